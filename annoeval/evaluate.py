"""
Evaluation orchestrator.

This module provides the main `evaluate()` function that grades a student
annotation file against the GT by wiring together:
- ingest() (raw text to AnnotationSet)
- match_annotations() (key pass, then greedy or optimal geometric pass)
- scoring (per-match scores, aggregates and feedback)

Rectangles are matched greedily and scored on detection, IoU, labels and
attributes. Polygons are matched optimally and scored on IoU, vertex
deviation, attributes and completeness.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Union

from annoeval.assignment import SolveAssignment
from annoeval.config import EvaluationConfig
from annoeval.exceptions import AnnoEvalError, SchemaMismatchError
from annoeval.geometry import ClipPolygons
from annoeval.ingest import ingest
from annoeval.matching import (
    ImageMatching,
    Pairing,
    box_iou,
    match_annotations,
    polygon_iou_function,
)
from annoeval.models import (
    AnnotationSet,
    EvaluationResult,
    ExtraAnnotation,
    ImageEvaluationResult,
    Match,
    MissedAnnotation,
    ToolType,
)
from annoeval.schema import EvalSchema, validate_schema
from annoeval.scoring import (
    DetectionCounts,
    attribute_accuracy,
    box_aggregate,
    box_feedback,
    critical_issues,
    label_accuracy,
    mean,
    polygon_aggregate,
    polygon_feedback,
    score_box_match,
    score_polygon_match,
)

logger = logging.getLogger(__name__)

AnnotationInput = Union[str, AnnotationSet]
SchemaInput = Union[EvalSchema, Mapping[str, Any], None]


# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════


def _as_annotation_set(data: AnnotationInput) -> AnnotationSet:
    if isinstance(data, AnnotationSet):
        return data
    return ingest(data)


def _as_schema(schema: SchemaInput) -> EvalSchema:
    if schema is None:
        return EvalSchema()
    if isinstance(schema, EvalSchema):
        return schema
    return EvalSchema.from_dict(dict(schema))


def _as_tool_type(tool_type: ToolType | str | None, gt: AnnotationSet) -> ToolType:
    if tool_type is None:
        return ToolType.POLYGON if gt.has_polygons else ToolType.BOUNDING_BOX
    return ToolType(tool_type)


def resolve_schema(schema: SchemaInput, gt: AnnotationSet, config: EvaluationConfig) -> EvalSchema:
    """
    Validate a schema against the GT and apply the mismatch policy.

    With on_schema_mismatch="warn" a mismatch is logged; a match key that
    no GT annotation carries is dropped so matching is geometry-only.

    Raises:
        SchemaMismatchError: If the schema does not fit the GT and
            on_schema_mismatch="raise"
    """
    resolved = _as_schema(schema)
    try:
        validate_schema(resolved, gt)
    except SchemaMismatchError as e:
        if config.on_schema_mismatch == "raise":
            raise
        logger.warning("Schema does not match GT data: %s", e)
        if e.match_key_missing:
            return resolved.without_match_key()
    return resolved


def _round_score(value: float) -> int:
    """Round half up and clamp to 0-100."""
    return max(0, min(100, int(math.floor(value + 0.5))))


def _image_name(annotations: AnnotationSet, image_id: int) -> str:
    image = annotations.image(image_id)
    if image is not None and image.file_name:
        return image.file_name
    return f"Image ID: {image_id}"


def _collect(
    gt: AnnotationSet,
    student: AnnotationSet,
    matchings: list[ImageMatching],
    score_pair: Callable[[Pairing], Match],
) -> tuple[list[Match], list[MissedAnnotation], list[ExtraAnnotation], list[ImageEvaluationResult]]:
    """Score every pairing and sort leftovers into missed and extra, per image."""
    matched: list[Match] = []
    missed: list[MissedAnnotation] = []
    extra: list[ExtraAnnotation] = []
    image_results = []

    for matching in matchings:
        image_result = ImageEvaluationResult(
            image_id=matching.image_id,
            image_name=_image_name(student if matching.student_only else gt, matching.image_id),
            matched=[score_pair(p) for p in matching.pairs],
            missed=[MissedAnnotation(gt.annotations[i]) for i in matching.missed],
            extra=[ExtraAnnotation(student.annotations[j]) for j in matching.extra],
        )
        matched.extend(image_result.matched)
        missed.extend(image_result.missed)
        extra.extend(image_result.extra)
        image_results.append(image_result)

    return matched, missed, extra, image_results


# ═══════════════════════════════════════════════════════════════════════════════
# Flows
# ═══════════════════════════════════════════════════════════════════════════════


def _evaluate_boxes(
    gt: AnnotationSet,
    student: AnnotationSet,
    schema: EvalSchema,
    config: EvaluationConfig,
    student_filename: str,
) -> EvaluationResult:
    matchings = match_annotations(
        gt,
        student,
        strategy="greedy",
        iou_threshold=config.box_iou_threshold,
        iou_fn=box_iou,
        match_key=schema.match_key,
        same_category=config.box_require_same_category,
    )
    policy = config.box_attribute_policy
    matched, missed, extra, image_results = _collect(
        gt,
        student,
        matchings,
        lambda pairing: score_box_match(gt, student, pairing, schema, policy),
    )

    counts = DetectionCounts(matched=len(matched), missed=len(missed), extra=len(extra))
    labels = label_accuracy(matched)
    attributes = attribute_accuracy(matched)
    average_iou = mean([m.iou for m in matched])
    final, breakdown = box_aggregate(matched, counts)

    logger.info(
        "Box evaluation %s: %d matched, %d missed, %d extra, score %.1f",
        student_filename or "<student>",
        counts.matched,
        counts.missed,
        counts.extra,
        final,
    )
    return EvaluationResult(
        tool_type=ToolType.BOUNDING_BOX,
        score=_round_score(final),
        raw_score=final,
        feedback=box_feedback(counts, labels, attributes, average_iou),
        critical_issues=critical_issues(counts, labels, attributes),
        matched=matched,
        missed=missed,
        extra=extra,
        image_results=image_results,
        average_iou=average_iou,
        precision=counts.precision,
        recall=counts.recall,
        label_accuracy=labels,
        attribute_accuracy=attributes,
        breakdown=breakdown,
        student_filename=student_filename,
    )


def _evaluate_polygons(
    gt: AnnotationSet,
    student: AnnotationSet,
    schema: EvalSchema,
    config: EvaluationConfig,
    student_filename: str,
    clipper: ClipPolygons | None = None,
    solver: SolveAssignment | None = None,
) -> EvaluationResult:
    matchings = match_annotations(
        gt,
        student,
        strategy="optimal",
        iou_threshold=config.polygon_iou_threshold,
        iou_fn=polygon_iou_function(clipper),
        match_key=schema.match_key,
        same_category=True,
        solver=solver,
    )
    policy = config.polygon_attribute_policy
    bands = config.deviation_bands
    matched, missed, extra, image_results = _collect(
        gt,
        student,
        matchings,
        lambda pairing: score_polygon_match(gt, student, pairing, schema, policy, bands),
    )

    counts = DetectionCounts(matched=len(matched), missed=len(missed), extra=len(extra))
    labels = label_accuracy(matched)
    attributes = attribute_accuracy(matched)
    final, breakdown = polygon_aggregate(matched, counts)

    logger.info(
        "Polygon evaluation %s: %d matched, %d missed, %d extra, score %.1f",
        student_filename or "<student>",
        counts.matched,
        counts.missed,
        counts.extra,
        final,
    )
    return EvaluationResult(
        tool_type=ToolType.POLYGON,
        score=_round_score(final),
        raw_score=final,
        feedback=polygon_feedback(counts, labels),
        critical_issues=critical_issues(counts, labels, attributes),
        matched=matched,
        missed=missed,
        extra=extra,
        image_results=image_results,
        average_iou=mean([m.iou for m in matched]),
        precision=counts.precision,
        recall=counts.recall,
        label_accuracy=labels,
        attribute_accuracy=attributes,
        breakdown=breakdown,
        student_filename=student_filename,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════════


def evaluate_boxes(
    gt: AnnotationInput,
    student: AnnotationInput,
    schema: SchemaInput = None,
    config: EvaluationConfig | None = None,
    *,
    student_filename: str = "",
) -> EvaluationResult:
    """
    Grade a rectangle submission.

    Matching is greedy in GT order at IoU strictly above
    config.box_iou_threshold; the score is
    0.4 * detection + 0.3 * IoU + 0.2 * labels + 0.1 * attributes.

    Raises:
        MalformedInputError: If either input cannot be ingested
        SchemaMismatchError: If the schema does not fit the GT and
            config.on_schema_mismatch="raise"
    """
    config = config or EvaluationConfig()
    gt_set = _as_annotation_set(gt)
    student_set = _as_annotation_set(student)
    resolved = resolve_schema(schema, gt_set, config)
    return _evaluate_boxes(gt_set, student_set, resolved, config, student_filename)


def evaluate_polygons(
    gt: AnnotationInput,
    student: AnnotationInput,
    schema: SchemaInput = None,
    config: EvaluationConfig | None = None,
    *,
    student_filename: str = "",
    clipper: ClipPolygons | None = None,
    solver: SolveAssignment | None = None,
) -> EvaluationResult:
    """
    Grade a polygon submission.

    Matching is a minimum-cost assignment at IoU of at least
    config.polygon_iou_threshold between same-category polygons; the score
    is half mean per-match quality, half completeness (F0.5).

    Args:
        gt: GT annotations (raw text or AnnotationSet)
        student: Student annotations (raw text or AnnotationSet)
        schema: Label/attribute catalogue with optional match key
        config: Evaluation configuration (uses defaults if None)
        student_filename: Name carried into the result for reporting
        clipper: Polygon clipping implementation (shapely if None)
        solver: Assignment solver (scipy Hungarian if None)

    Raises:
        MalformedInputError: If either input cannot be ingested
        SchemaMismatchError: If the schema does not fit the GT and
            config.on_schema_mismatch="raise"
    """
    config = config or EvaluationConfig()
    gt_set = _as_annotation_set(gt)
    student_set = _as_annotation_set(student)
    resolved = resolve_schema(schema, gt_set, config)
    return _evaluate_polygons(
        gt_set, student_set, resolved, config, student_filename, clipper, solver
    )


def evaluate(
    gt: AnnotationInput,
    student: AnnotationInput,
    schema: SchemaInput = None,
    tool_type: ToolType | str | None = None,
    config: EvaluationConfig | None = None,
    student_filename: str = "",
) -> EvaluationResult:
    """
    Grade a student annotation file against the GT.

    This is the main entry point for annoeval. It handles:
    - Format detection and ingestion of both inputs
    - Schema validation against the GT
    - Tool type selection (polygon when the GT holds polygons)
    - Matching and scoring with the flow for that tool type

    Args:
        gt: GT annotations (CVAT XML / COCO JSON text, or an AnnotationSet)
        student: Student annotations, same forms as `gt`
        schema: EvalSchema or its dict form (no attributes, no key if None)
        tool_type: ToolType or its value; inferred from the GT if None
        config: Evaluation configuration (uses defaults if None)
        student_filename: Name carried into the result for reporting

    Returns:
        EvaluationResult with the 0-100 score, feedback and match details

    Raises:
        MalformedInputError: If either input cannot be ingested
        SchemaMismatchError: If the schema does not fit the GT and
            config.on_schema_mismatch="raise"
        ValueError: If tool_type is not a known ToolType value

    Example:
        >>> result = evaluate(gt_xml, student_xml, {"labels": [{"name": "car"}]})
        >>> print(result.score, result.feedback[0])
    """
    config = config or EvaluationConfig()
    gt_set = _as_annotation_set(gt)
    student_set = _as_annotation_set(student)
    resolved = resolve_schema(schema, gt_set, config)
    kind = _as_tool_type(tool_type, gt_set)
    return _dispatch(gt_set, student_set, resolved, kind, config, student_filename)


def _dispatch(
    gt: AnnotationSet,
    student: AnnotationSet,
    schema: EvalSchema,
    tool_type: ToolType,
    config: EvaluationConfig,
    student_filename: str,
) -> EvaluationResult:
    if tool_type is ToolType.POLYGON:
        return _evaluate_polygons(gt, student, schema, config, student_filename)
    return _evaluate_boxes(gt, student, schema, config, student_filename)


def evaluate_batch(
    gt: AnnotationInput,
    submissions: Mapping[str, AnnotationInput] | Iterable[tuple[str, AnnotationInput]],
    schema: SchemaInput = None,
    tool_type: ToolType | str | None = None,
    config: EvaluationConfig | None = None,
    parallel: bool = True,
) -> Iterator[tuple[str, EvaluationResult | AnnoEvalError]]:
    """
    Evaluate many submissions against one GT, yielding results as completed.

    The GT is ingested and the schema validated once. A submission that
    fails to ingest yields its error instead of aborting the batch.

    Args:
        gt: GT annotations (raw text or AnnotationSet)
        submissions: name -> content mapping, or (name, content) pairs
        schema: Label/attribute catalogue with optional match key
        tool_type: ToolType or its value; inferred from the GT if None
        config: Evaluation configuration (max_workers sizes the pool)
        parallel: Evaluate on a thread pool; order is then not preserved

    Yields:
        (name, result) tuples where result is EvaluationResult or AnnoEvalError

    Raises:
        MalformedInputError: If the GT cannot be ingested
        SchemaMismatchError: If the schema does not fit the GT and
            config.on_schema_mismatch="raise"
    """
    config = config or EvaluationConfig()
    gt_set = _as_annotation_set(gt)
    resolved = resolve_schema(schema, gt_set, config)
    kind = _as_tool_type(tool_type, gt_set)
    items = list(submissions.items()) if isinstance(submissions, Mapping) else list(submissions)

    def run(name: str, content: AnnotationInput) -> EvaluationResult | AnnoEvalError:
        try:
            student_set = _as_annotation_set(content)
            return _dispatch(gt_set, student_set, resolved, kind, config, name)
        except AnnoEvalError as e:
            logger.warning("Evaluation failed for %s: %s", name, e)
            return e

    if not parallel or len(items) < 2:
        for name, content in items:
            yield (name, run(name, content))
        return

    with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
        futures = {executor.submit(run, name, content): name for name, content in items}
        for future in as_completed(futures):
            yield (futures[future], future.result())
