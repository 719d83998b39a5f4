"""Generate evaluation reports in various formats.

This module provides:
1. generate_cli_report() - Terminal-friendly table output
2. generate_json_report() - Machine-readable JSON
3. summary_csv() / detailed_csv() - Spreadsheet exports
4. save_report() - Write any of the above to disk
"""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime
from pathlib import Path
from typing import Any

from tabulate import tabulate

from annoeval.models import EvaluationResult

REPORT_VERSION = "1.0.0"


def generate_cli_report(
    results: list[EvaluationResult],
    title: str = "Annotation Evaluation Report",
) -> str:
    """Generate a CLI-friendly report with tables.

    Args:
        results: One result per student submission
        title: Report title

    Returns:
        Formatted string for terminal output
    """
    lines = []
    lines.append("=" * 60)
    lines.append(title)
    lines.append("=" * 60)
    lines.append("")

    headers = ["Submission", "Tool", "Score", "Matched", "Missed", "Extra", "Avg IoU"]
    rows = []
    for r in results:
        rows.append(
            [
                r.student_filename or "-",
                r.tool_type.value,
                r.score,
                len(r.matched),
                len(r.missed),
                len(r.extra),
                f"{r.average_iou:.3f}",
            ]
        )
    lines.append(tabulate(rows, headers=headers, tablefmt="simple"))
    lines.append("")

    for r in results:
        lines.append("-" * 40)
        lines.append(f"{r.student_filename or 'Submission'}: {r.score}/100")
        for key, value in r.breakdown.items():
            lines.append(f"  {key}: {value:.1f}")
        for line in r.feedback:
            lines.append(f"  - {line}")
        if r.critical_issues:
            lines.append("  Critical issues:")
            for issue in r.critical_issues:
                lines.append(f"    ! {issue}")
        lines.append("")

    return "\n".join(lines)


def generate_json_report(results: list[EvaluationResult]) -> dict[str, Any]:
    """Generate a JSON-serializable report.

    Args:
        results: One result per student submission

    Returns:
        Dictionary suitable for JSON serialization
    """
    return {
        "version": REPORT_VERSION,
        "timestamp": datetime.now().isoformat(),
        "count": len(results),
        "average_score": (sum(r.score for r in results) / len(results)) if results else 0.0,
        "results": [r.to_dict() for r in results],
    }


SUMMARY_HEADERS = [
    "Filename",
    "Tool",
    "Score",
    "Average IoU",
    "Label Accuracy",
    "Attribute Accuracy",
    "Matched",
    "Missed",
    "Extra",
    "Feedback",
    "Critical Issues",
]


MATCHED_HEADERS = [
    "Image",
    "GT ID",
    "Student ID",
    "GT Label",
    "Student Label",
    "Method",
    "IoU",
    "Label Match",
    "Attribute Score",
    "Final Score",
]


def summary_csv(results: list[EvaluationResult]) -> str:
    """One row per submission, ready for a gradebook."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(SUMMARY_HEADERS)
    for r in results:
        writer.writerow(
            [
                r.student_filename,
                r.tool_type.value,
                r.score,
                f"{r.average_iou * 100:.1f}",
                f"{r.label_accuracy.accuracy:.1f}",
                f"{r.attribute_accuracy.average_similarity:.1f}",
                len(r.matched),
                len(r.missed),
                len(r.extra),
                " | ".join(r.feedback),
                " | ".join(r.critical_issues),
            ]
        )
    return buffer.getvalue()


def detailed_csv(result: EvaluationResult) -> str:
    """Summary block followed by matched, missed and extra annotation rows."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)

    writer.writerow(["Summary"])
    writer.writerow(["Filename", result.student_filename])
    writer.writerow(["Score", result.score])
    for key, value in result.breakdown.items():
        writer.writerow([key, f"{value:.1f}"])
    writer.writerow([])

    writer.writerow(["Matched"])
    writer.writerow(MATCHED_HEADERS)
    for image in result.image_results:
        for m in image.matched:
            writer.writerow(
                [
                    image.image_name,
                    m.gt.id,
                    m.student.id,
                    m.gt.label,
                    m.student.label,
                    m.method,
                    f"{m.iou:.3f}",
                    "yes" if m.label_match else "no",
                    f"{m.attribute_score:.1f}",
                    "" if m.final_score is None else f"{m.final_score:.1f}",
                ]
            )
    writer.writerow([])

    writer.writerow(["Missed"])
    writer.writerow(["Image", "GT ID", "GT Label"])
    for image in result.image_results:
        for miss in image.missed:
            writer.writerow([image.image_name, miss.gt.id, miss.gt.label])
    writer.writerow([])

    writer.writerow(["Extra"])
    writer.writerow(["Image", "Student ID", "Student Label"])
    for image in result.image_results:
        for e in image.extra:
            writer.writerow([image.image_name, e.student.id, e.student.label])

    return buffer.getvalue()


def save_report(report: str | dict[str, Any], output_path: str | Path) -> None:
    """Save a text/CSV report or a JSON report dict to file.

    Args:
        report: Report text, or a dict from generate_json_report()
        output_path: Path to write
    """
    output_path = Path(output_path)
    with open(output_path, "w", encoding="utf-8", newline="") as f:
        if isinstance(report, dict):
            json.dump(report, f, indent=2)
        else:
            f.write(report)
