"""Match GT annotations to student annotations.

This module provides:
1. Pairing / ImageMatching - Index-based matching results
2. match_by_key() - Pass 1, exact match-key pairing
3. match_greedy() / match_optimal() - Pass 2, geometric pairing
4. match_annotations() - The per-image two-pass protocol

Annotations are addressed by their position in AnnotationSet.annotations.
Claimed state lives in two boolean lists owned by one match_annotations()
call; both passes only consider annotations that are still unclaimed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

import numpy as np

from annoeval.assignment import FORBIDDEN_COST, SolveAssignment, solve
from annoeval.geometry import ClipPolygons, bbox_iou, polygon_iou
from annoeval.models import Annotation, AnnotationSet

logger = logging.getLogger(__name__)

IoUFunction = Callable[[Annotation, Annotation], float]
Strategy = Literal["greedy", "optimal"]


@dataclass(frozen=True)
class Pairing:
    """A matched pair of annotation positions."""

    gt_index: int
    student_index: int
    iou: float
    method: Literal["key", "geometry"] = "geometry"


@dataclass
class ImageMatching:
    """Outcome of the two-pass protocol for one image."""

    image_id: int
    pairs: list[Pairing] = field(default_factory=list)
    missed: list[int] = field(default_factory=list)
    extra: list[int] = field(default_factory=list)
    # image id is the student's own; no GT image shares it
    student_only: bool = False


def box_iou(gt: Annotation, student: Annotation) -> float:
    """IoU of the annotations' bounding boxes."""
    return bbox_iou(gt.bbox, student.bbox)


def polygon_iou_function(clipper: ClipPolygons | None = None) -> IoUFunction:
    """IoU of the annotations' rings, clipped with `clipper`."""

    def _iou(gt: Annotation, student: Annotation) -> float:
        return polygon_iou(gt.ring, student.ring, clipper)

    return _iou


def _image_ids(annotations: AnnotationSet) -> list[int]:
    """Image ids in first-seen order, listed images before ids only annotations use."""
    seen = dict.fromkeys(image.id for image in annotations.images)
    seen.update(dict.fromkeys(ann.image_id for ann in annotations.annotations))
    return list(seen)


def align_image_ids(gt: AnnotationSet, student: AnnotationSet) -> dict[int, int | None]:
    """
    Map every student image id onto a GT image id, or None.

    A student image whose file name matches a GT image takes that image's id.
    Otherwise it keeps its own id when the GT holds that id and no name match
    already claimed it. Once any image aligns by name, an image whose name
    differs from the GT image at its id does not keep that id either. Anything
    else maps to None: the image has no GT counterpart.
    """
    gt_ids = set(_image_ids(gt))
    gt_ids_by_name: dict[str, int] = {}
    for image in gt.images:
        if image.file_name:
            gt_ids_by_name.setdefault(image.file_name, image.id)

    by_name: dict[int, int] = {}
    for image in student.images:
        if image.file_name in gt_ids_by_name:
            by_name.setdefault(image.id, gt_ids_by_name[image.file_name])
    claimed = set(by_name.values())

    mapping: dict[int, int | None] = {}
    for image_id in _image_ids(student):
        if image_id in by_name:
            mapping[image_id] = by_name[image_id]
            continue
        mapping[image_id] = None
        if image_id not in gt_ids or image_id in claimed:
            continue
        gt_image = gt.image(image_id)
        student_image = student.image(image_id)
        # with name alignment in use, two different names are two different pictures
        named = gt_image and student_image and gt_image.file_name and student_image.file_name
        if by_name and named:
            continue
        mapping[image_id] = image_id
    return mapping


def match_by_key(
    gt: AnnotationSet,
    student: AnnotationSet,
    gt_indices: list[int],
    student_indices: list[int],
    match_key: str,
    gt_claimed: list[bool],
    student_claimed: list[bool],
    iou_fn: IoUFunction,
) -> list[Pairing]:
    """
    Pair annotations sharing a match-key value, ignoring geometry.

    The first unclaimed student annotation carrying a key value owns it;
    later duplicates stay for the geometric pass. Each key pairs once.
    """
    lookup: dict[str, int] = {}
    for sj in student_indices:
        if student_claimed[sj]:
            continue
        value = student.annotations[sj].attribute(match_key)
        if value and value not in lookup:
            lookup[value] = sj

    pairs = []
    for gi in gt_indices:
        if gt_claimed[gi]:
            continue
        value = gt.annotations[gi].attribute(match_key)
        if not value or value not in lookup:
            continue
        sj = lookup.pop(value)
        gt_claimed[gi] = True
        student_claimed[sj] = True
        iou = iou_fn(gt.annotations[gi], student.annotations[sj])
        pairs.append(Pairing(gi, sj, iou, method="key"))
    return pairs


def match_greedy(
    gt: AnnotationSet,
    student: AnnotationSet,
    gt_indices: list[int],
    student_indices: list[int],
    gt_claimed: list[bool],
    student_claimed: list[bool],
    iou_fn: IoUFunction,
    iou_threshold: float,
    same_category: bool = False,
) -> list[Pairing]:
    """
    Best-IoU-first pairing in GT order.

    Each unclaimed GT annotation takes the unclaimed student annotation with
    the highest IoU strictly above `iou_threshold`; the first one wins a tie.
    """
    pairs = []
    for gi in gt_indices:
        if gt_claimed[gi]:
            continue
        gt_ann = gt.annotations[gi]
        best: tuple[int, float] | None = None
        for sj in student_indices:
            if student_claimed[sj]:
                continue
            if same_category and gt.category_key(gt_ann) != student.category_key(
                student.annotations[sj]
            ):
                continue
            iou = iou_fn(gt_ann, student.annotations[sj])
            if iou > iou_threshold and (best is None or iou > best[1]):
                best = (sj, iou)
        if best is not None:
            sj, iou = best
            gt_claimed[gi] = True
            student_claimed[sj] = True
            pairs.append(Pairing(gi, sj, iou))
    return pairs


def match_optimal(
    gt: AnnotationSet,
    student: AnnotationSet,
    gt_indices: list[int],
    student_indices: list[int],
    gt_claimed: list[bool],
    student_claimed: list[bool],
    iou_fn: IoUFunction,
    iou_threshold: float,
    same_category: bool = True,
    solver: SolveAssignment | None = None,
) -> list[Pairing]:
    """
    Minimum-cost one-to-one pairing of the unclaimed annotations.

    cost = 1 - IoU for pairs with IoU >= `iou_threshold` (and matching
    categories when `same_category`), FORBIDDEN_COST otherwise. Pairs the
    solver lands on a forbidden cell are dropped.
    """
    rows = [gi for gi in gt_indices if not gt_claimed[gi]]
    cols = [sj for sj in student_indices if not student_claimed[sj]]
    if not rows or not cols:
        return []

    cost = np.full((len(rows), len(cols)), FORBIDDEN_COST, dtype=np.float64)
    ious = np.zeros_like(cost)
    for r, gi in enumerate(rows):
        gt_ann = gt.annotations[gi]
        gt_key = gt.category_key(gt_ann)
        for c, sj in enumerate(cols):
            student_ann = student.annotations[sj]
            if same_category and gt_key != student.category_key(student_ann):
                continue
            iou = iou_fn(gt_ann, student_ann)
            ious[r, c] = iou
            if iou >= iou_threshold:
                cost[r, c] = 1.0 - iou

    pairs = []
    for r, c, _ in solve(cost, solver):
        gi, sj = rows[r], cols[c]
        gt_claimed[gi] = True
        student_claimed[sj] = True
        pairs.append(Pairing(gi, sj, float(ious[r, c])))
    return pairs


def match_annotations(
    gt: AnnotationSet,
    student: AnnotationSet,
    *,
    strategy: Strategy,
    iou_threshold: float,
    iou_fn: IoUFunction,
    match_key: str | None = None,
    same_category: bool = True,
    solver: SolveAssignment | None = None,
) -> list[ImageMatching]:
    """Run the two-pass protocol image by image.

    Pass 1 pairs annotations sharing a `match_key` value (when given).
    Pass 2 pairs the rest geometrically, with `strategy` "greedy" or
    "optimal". Whatever is left unclaimed is missed (GT) or extra (student).

    Args:
        gt: Ground-truth annotations
        student: Student annotations
        strategy: "greedy" (best IoU first) or "optimal" (assignment solver)
        iou_threshold: Minimum IoU for a geometric pair
        iou_fn: IoU between a GT and a student annotation
        match_key: Attribute name used for exact pairing, if any
        same_category: Forbid pairs whose categories differ
        solver: Assignment solver for the "optimal" strategy

    Returns:
        One ImageMatching per image holding any annotation: GT images in
        first-seen order, then student images with no GT counterpart
    """
    if strategy not in ("greedy", "optimal"):
        raise ValueError(f"strategy must be 'greedy' or 'optimal', got {strategy!r}")

    remap = align_image_ids(gt, student)
    gt_by_image: dict[int, list[int]] = {}
    for gi, ann in enumerate(gt.annotations):
        gt_by_image.setdefault(ann.image_id, []).append(gi)
    student_by_image: dict[int, list[int]] = {}
    unaligned_by_image: dict[int, list[int]] = {}
    for sj, ann in enumerate(student.annotations):
        target = remap.get(ann.image_id)
        if target is None:
            unaligned_by_image.setdefault(ann.image_id, []).append(sj)
        else:
            student_by_image.setdefault(target, []).append(sj)

    gt_claimed = [False] * len(gt.annotations)
    student_claimed = [False] * len(student.annotations)

    buckets = [
        (image_id, gt_by_image.get(image_id, []), student_by_image.get(image_id, []), False)
        for image_id in _image_ids(gt)
        if image_id in gt_by_image or image_id in student_by_image
    ]
    buckets.extend(
        (image_id, [], student_indices, True)
        for image_id, student_indices in unaligned_by_image.items()
    )

    results = []
    for image_id, gt_indices, student_indices, student_only in buckets:
        common = {
            "gt": gt,
            "student": student,
            "gt_indices": gt_indices,
            "student_indices": student_indices,
            "gt_claimed": gt_claimed,
            "student_claimed": student_claimed,
            "iou_fn": iou_fn,
        }

        pairs: list[Pairing] = []
        if match_key:
            pairs.extend(match_by_key(match_key=match_key, **common))
        key_count = len(pairs)

        if strategy == "optimal":
            pairs.extend(
                match_optimal(
                    iou_threshold=iou_threshold,
                    same_category=same_category,
                    solver=solver,
                    **common,
                )
            )
        else:
            pairs.extend(
                match_greedy(
                    iou_threshold=iou_threshold,
                    same_category=same_category,
                    **common,
                )
            )

        logger.debug(
            "Image %s: %d key pairs, %d geometric pairs",
            image_id,
            key_count,
            len(pairs) - key_count,
        )
        results.append(
            ImageMatching(
                image_id=image_id,
                pairs=pairs,
                missed=[gi for gi in gt_indices if not gt_claimed[gi]],
                extra=[sj for sj in student_indices if not student_claimed[sj]],
                student_only=student_only,
            )
        )
    return results
