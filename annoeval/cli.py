"""
Command-line grading of annotation submissions.

Usage:
    # Grade one submission, tool type inferred from the GT
    annoeval gt.xml student.xml

    # Grade a class with a schema, writing a CSV gradebook
    annoeval gt.json alice.json bob.json \\
        --schema schema.yaml --format csv --output grades.csv

    # Force the polygon flow and print a JSON report
    annoeval gt.xml student.xml --tool polygon --format json

Exit codes:
    0  every submission was graded
    1  at least one submission could not be graded
    2  the GT or the schema could not be loaded
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from annoeval.config import EvaluationConfig
from annoeval.evaluate import evaluate_batch
from annoeval.exceptions import AnnoEvalError
from annoeval.ingest import ingest
from annoeval.models import EvaluationResult, ToolType
from annoeval.reports import (
    generate_cli_report,
    generate_json_report,
    save_report,
    summary_csv,
)
from annoeval.schema import EvalSchema, load_schema

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="annoeval",
        description="Grade student annotations against a ground-truth file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("gt", type=Path, help="Ground-truth annotations (CVAT XML or COCO JSON)")
    parser.add_argument("students", type=Path, nargs="+", help="Student annotation files")
    parser.add_argument(
        "--schema",
        type=Path,
        help="Label/attribute schema (YAML or JSON)",
    )
    parser.add_argument(
        "--tool",
        choices=[t.value for t in ToolType],
        help="Annotation tool (default: inferred from the GT)",
    )
    parser.add_argument(
        "--format",
        choices=["text", "json", "csv"],
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="Write the report here instead of stdout",
    )
    parser.add_argument(
        "--sequential",
        action="store_true",
        help="Grade submissions one at a time",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def submission_names(paths: list[Path]) -> list[str]:
    """Report name per submission: the file name, or the full path when file names repeat."""
    counts: dict[str, int] = {}
    for path in paths:
        counts[path.name] = counts.get(path.name, 0) + 1
    return [path.name if counts[path.name] == 1 else str(path) for path in paths]


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        gt = ingest(args.gt.read_text(encoding="utf-8"))
        schema = load_schema(args.schema) if args.schema else EvalSchema()
    except (OSError, AnnoEvalError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    submissions = []
    failures = 0
    for path, name in zip(args.students, submission_names(args.students)):
        try:
            submissions.append((name, path.read_text(encoding="utf-8")))
        except OSError as e:
            print(f"Error: cannot read {path}: {e}", file=sys.stderr)
            failures += 1

    results: list[EvaluationResult] = []
    try:
        for name, outcome in evaluate_batch(
            gt,
            submissions,
            schema=schema,
            tool_type=args.tool,
            config=EvaluationConfig(),
            parallel=not args.sequential,
        ):
            if isinstance(outcome, AnnoEvalError):
                print(f"Error: {name}: {outcome}", file=sys.stderr)
                failures += 1
            else:
                results.append(outcome)
    except AnnoEvalError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    # Completion order is arbitrary in parallel mode
    order = {name: i for i, (name, _) in enumerate(submissions)}
    results.sort(key=lambda r: order.get(r.student_filename, len(order)))

    if args.format == "json":
        report = generate_json_report(results)
        text = json.dumps(report, indent=2)
    elif args.format == "csv":
        text = summary_csv(results)
    else:
        text = generate_cli_report(results)

    if args.output:
        save_report(text, args.output)
        print(f"Report saved to: {args.output}")
    else:
        print(text)

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
