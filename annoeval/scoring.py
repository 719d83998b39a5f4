"""Score matched annotations and aggregate them into a final grade.

This module provides:
1. Attribute comparison - string_similarity(), attribute_similarities()
2. Polygon quality - deviation_score(), polygon_score()
3. Per-match scoring - score_box_match(), score_polygon_match()
4. Aggregates - DetectionCounts, box_aggregate(), polygon_aggregate()
5. Feedback - box_feedback(), polygon_feedback(), critical_issues()
"""

from __future__ import annotations

from dataclasses import dataclass

from rapidfuzz.distance import Levenshtein

from annoeval.config import AttributePolicy, AttributeStrategy
from annoeval.geometry import vertex_deviations
from annoeval.matching import Pairing
from annoeval.models import (
    Annotation,
    AnnotationSet,
    AttributeAccuracy,
    LabelAccuracy,
    Match,
    Point,
)
from annoeval.schema import EvalSchema

# ═══════════════════════════════════════════════════════════════════════════════
# Attributes
# ═══════════════════════════════════════════════════════════════════════════════


def string_similarity(a: str, b: str) -> float:
    """
    Case-insensitive normalized edit-distance similarity.

    1 - levenshtein(a, b) / max(len(a), len(b)); 1.0 when both are empty.
    """
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a.lower(), b.lower()) / longest


def compare_attribute(gt_value: str, student_value: str, strategy: AttributeStrategy) -> float:
    """Similarity in [0, 1] of two attribute values under one strategy."""
    if strategy == "similarity":
        return string_similarity(gt_value, student_value)
    return 1.0 if gt_value == student_value else 0.0


def attribute_similarities(
    gt: Annotation,
    student: Annotation,
    schema: EvalSchema,
    label: str,
    policy: AttributePolicy,
) -> dict[str, float]:
    """
    Compare every attribute the schema declares for `label`.

    The match key and the "label" pseudo-attribute are skipped. A value
    missing on either side compares as the empty string.
    """
    return {
        name: compare_attribute(
            gt.attribute(name) or "",
            student.attribute(name) or "",
            policy.strategy_for(label, name),
        )
        for name in schema.compared_attributes(label)
    }


def attribute_score(similarities: dict[str, float]) -> float:
    """Mean similarity scaled to 0-100; 100 when nothing is declared."""
    if not similarities:
        return 100.0
    return sum(similarities.values()) / len(similarities) * 100


# ═══════════════════════════════════════════════════════════════════════════════
# Polygon quality
# ═══════════════════════════════════════════════════════════════════════════════


def deviation_score(
    reference: tuple[Point, ...],
    points: tuple[Point, ...],
    bands: tuple[float, float, float] = (2.0, 5.0, 10.0),
) -> float:
    """
    Vertex-level closeness of a student polygon to its GT polygon (0-100).

    Each student vertex is bucketed by its distance to the nearest GT vertex:
    perfect (<= bands[0]), minor (<= bands[1]), moderate (<= bands[2]) or
    major. Mostly-perfect polygons get a fixed tier score; otherwise the
    off-band percentages are penalized 0.1 / 0.3 / 0.5.
    """
    deviations = vertex_deviations(reference, points, search_radius=bands[2])
    if not deviations:
        return 100.0

    perfect, minor, moderate = bands
    n = len(deviations)
    p_perfect = sum(1 for d in deviations if d <= perfect) / n * 100
    p_minor = sum(1 for d in deviations if perfect < d <= minor) / n * 100
    p_moderate = sum(1 for d in deviations if minor < d <= moderate) / n * 100
    p_major = sum(1 for d in deviations if d > moderate) / n * 100

    if p_perfect >= 98:
        return 100.0
    if p_perfect >= 95:
        return 98.0
    if p_perfect >= 90:
        return 95.0
    return max(0.0, 100 - (0.1 * p_minor + 0.3 * p_moderate + 0.5 * p_major))


def polygon_score(iou: float, deviation: float) -> float:
    """Geometric quality: half area overlap, half vertex deviation."""
    return iou * 100 * 0.5 + deviation * 0.5


# ═══════════════════════════════════════════════════════════════════════════════
# Per-match scoring
# ═══════════════════════════════════════════════════════════════════════════════


def _labels_agree(gt: AnnotationSet, student: AnnotationSet, pairing: Pairing) -> bool:
    return gt.category_key(gt.annotations[pairing.gt_index]) == student.category_key(
        student.annotations[pairing.student_index]
    )


def score_box_match(
    gt: AnnotationSet,
    student: AnnotationSet,
    pairing: Pairing,
    schema: EvalSchema,
    policy: AttributePolicy,
) -> Match:
    """Build a rectangle Match: IoU, label agreement and attributes only."""
    gt_ann = gt.annotations[pairing.gt_index]
    student_ann = student.annotations[pairing.student_index]
    similarities = attribute_similarities(
        gt_ann, student_ann, schema, gt.category_name(gt_ann), policy
    )
    return Match(
        gt=gt_ann,
        student=student_ann,
        iou=pairing.iou,
        method=pairing.method,
        label_match=_labels_agree(gt, student, pairing),
        attribute_similarities=similarities,
        attribute_score=attribute_score(similarities),
    )


def score_polygon_match(
    gt: AnnotationSet,
    student: AnnotationSet,
    pairing: Pairing,
    schema: EvalSchema,
    policy: AttributePolicy,
    bands: tuple[float, float, float] = (2.0, 5.0, 10.0),
) -> Match:
    """Build a polygon Match with deviation, polygon and final scores."""
    gt_ann = gt.annotations[pairing.gt_index]
    student_ann = student.annotations[pairing.student_index]
    similarities = attribute_similarities(
        gt_ann, student_ann, schema, gt.category_name(gt_ann), policy
    )
    attr_score = attribute_score(similarities)
    deviation = deviation_score(gt_ann.ring, student_ann.ring, bands)
    poly_score = polygon_score(pairing.iou, deviation)
    return Match(
        gt=gt_ann,
        student=student_ann,
        iou=pairing.iou,
        method=pairing.method,
        label_match=_labels_agree(gt, student, pairing),
        attribute_similarities=similarities,
        attribute_score=attr_score,
        deviation_score=deviation,
        polygon_score=poly_score,
        final_score=(poly_score + attr_score) / 2,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Aggregates
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class DetectionCounts:
    """Matching outcome counts for one evaluation."""

    matched: int = 0
    missed: int = 0
    extra: int = 0

    @property
    def total_gt(self) -> int:
        return self.matched + self.missed

    @property
    def total_student(self) -> int:
        return self.matched + self.extra

    @property
    def precision(self) -> float:
        """Precision = matched / (matched + extra)."""
        if self.total_student == 0:
            return 0.0
        return self.matched / self.total_student

    @property
    def recall(self) -> float:
        """Recall = matched / (matched + missed)."""
        if self.total_gt == 0:
            return 0.0
        return self.matched / self.total_gt


def completeness_score(precision: float, recall: float) -> float:
    """F-beta (beta = 0.5, precision-weighted) scaled to 0-100."""
    if precision == 0 and recall == 0:
        return 0.0
    return 1.25 * precision * recall / (0.25 * precision + recall) * 100


def detection_score(precision: float, recall: float) -> float:
    """Rectangle detection score: recall-leaning blend scaled to 0-100."""
    return (precision * 0.4 + recall * 0.6) * 100


def mean(values: list[float], default: float = 0.0) -> float:
    if not values:
        return default
    return sum(values) / len(values)


def label_accuracy(matches: list[Match]) -> LabelAccuracy:
    return LabelAccuracy(correct=sum(1 for m in matches if m.label_match), total=len(matches))


def attribute_accuracy(matches: list[Match]) -> AttributeAccuracy:
    """Attribute agreement over every individual comparison, not per match."""
    similarities = [s for m in matches for s in m.attribute_similarities.values()]
    return AttributeAccuracy(similarity_sum=sum(similarities), comparisons=len(similarities))


def box_aggregate(matches: list[Match], counts: DetectionCounts) -> tuple[float, dict[str, float]]:
    """
    Final rectangle score and its components.

    final = 0.4 * detection + 0.3 * IoU + 0.2 * label accuracy
          + 0.1 * attribute accuracy
    """
    components = {
        "detection_score": detection_score(counts.precision, counts.recall),
        "iou_score": mean([m.iou for m in matches]) * 100,
        "label_accuracy": label_accuracy(matches).accuracy,
        "attribute_accuracy": attribute_accuracy(matches).average_similarity,
    }
    final = (
        components["detection_score"] * 0.4
        + components["iou_score"] * 0.3
        + components["label_accuracy"] * 0.2
        + components["attribute_accuracy"] * 0.1
    )
    return final, components


def polygon_aggregate(
    matches: list[Match], counts: DetectionCounts
) -> tuple[float, dict[str, float]]:
    """
    Final polygon score and its components.

    final = 0.5 * mean per-match final score + 0.5 * completeness
    """
    components = {
        "quality_score": mean([m.final_score or 0.0 for m in matches]),
        "completeness_score": completeness_score(counts.precision, counts.recall),
        "average_deviation": mean([m.deviation_score or 0.0 for m in matches]),
        "average_polygon_score": mean([m.polygon_score or 0.0 for m in matches]),
        "average_attribute_score": mean([m.attribute_score for m in matches], default=100.0),
    }
    final = components["quality_score"] * 0.5 + components["completeness_score"] * 0.5
    return final, components


# ═══════════════════════════════════════════════════════════════════════════════
# Feedback
# ═══════════════════════════════════════════════════════════════════════════════


def box_feedback(
    counts: DetectionCounts,
    labels: LabelAccuracy,
    attributes: AttributeAccuracy,
    average_iou: float,
) -> list[str]:
    feedback = [f"Detected {counts.matched} out of {counts.total_gt} ground truth annotations."]
    if counts.missed > 0:
        feedback.append(f"You missed {counts.missed} annotations.")
    if counts.extra > 0:
        feedback.append(f"You added {counts.extra} extra annotations.")
    mislabeled = labels.total - labels.correct
    if mislabeled > 0:
        feedback.append(f"You mislabeled {mislabeled} annotations.")
    feedback.append(f"Average IoU for matched items is {average_iou * 100:.1f}%.")
    if attributes.comparisons > 0:
        feedback.append(
            f"Attribute text accuracy for matched items is {attributes.average_similarity:.1f}%."
        )
    return feedback


def polygon_feedback(counts: DetectionCounts, labels: LabelAccuracy) -> list[str]:
    feedback = [
        "Evaluation complete. Overall score reflects a blend of match quality and completeness.",
        f"Matched {counts.matched} polygons.",
        f"Found {counts.missed} missed and {counts.extra} extra polygons.",
    ]
    mislabeled = labels.total - labels.correct
    if mislabeled > 0:
        feedback.append(f"You mislabeled {mislabeled} polygons.")
    return feedback


def critical_issues(
    counts: DetectionCounts,
    labels: LabelAccuracy,
    attributes: AttributeAccuracy,
) -> list[str]:
    issues = []
    if counts.recall < 0.5 and counts.total_gt > 5:
        issues.append(
            f"High number of missed annotations ({counts.missed}). Review the GT carefully."
        )
    if counts.precision < 0.5 and counts.total_student > 5:
        issues.append(
            f"High number of extra annotations ({counts.extra}). "
            "Ensure you only annotate required objects."
        )
    if labels.accuracy < 70 and labels.total > 5:
        issues.append(
            f"Low label accuracy: {labels.accuracy:.1f}%. Double-check object classes."
        )
    if attributes.average_similarity < 70 and attributes.comparisons > 0:
        issues.append(
            f"Low attribute accuracy: {attributes.average_similarity:.1f}%. "
            "Check for typos or incorrect text."
        )
    return issues
