"""
Data models for annoeval.

Canonical annotation types produced by ingestion and the result types
produced by evaluation. Annotation sets are created once per file and
never mutated; the matcher addresses annotations by their position in
AnnotationSet.annotations, since ids are only unique within one file.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Union

Point = tuple[float, float]

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_label(name: str) -> str:
    """Lowercase a label and drop every non-alphanumeric character."""
    return _NON_ALNUM.sub("", name.lower())


# ═══════════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════════


class ToolType(Enum):
    """Annotation tool a submission was produced with."""

    BOUNDING_BOX = "bounding_box"
    POLYGON = "polygon"


# ═══════════════════════════════════════════════════════════════════════════════
# Geometry
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class BBox:
    """
    Axis-aligned box in pixel space.

    Width and height come straight from the source. Inverted corners give
    negative values, which are kept rather than corrected.
    """

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_corners(cls, xtl: float, ytl: float, xbr: float, ybr: float) -> BBox:
        return cls(x=xtl, y=ytl, width=xbr - xtl, height=ybr - ytl)

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def to_polygon(self) -> Polygon:
        """Return the box as a four-vertex polygon, clockwise from top-left."""
        return Polygon(
            points=(
                (self.x, self.y),
                (self.x2, self.y),
                (self.x2, self.y2),
                (self.x, self.y2),
            )
        )

    def to_list(self) -> list[float]:
        return [self.x, self.y, self.width, self.height]


@dataclass(frozen=True)
class Polygon:
    """Ordered ring of 2-D points. The first vertex is not repeated at the end."""

    points: tuple[Point, ...]

    def __len__(self) -> int:
        return len(self.points)

    @property
    def bbox(self) -> BBox:
        """Axis-aligned bounding box of the point set."""
        if not self.points:
            return BBox(0.0, 0.0, 0.0, 0.0)
        xs = [p[0] for p in self.points]
        ys = [p[1] for p in self.points]
        return BBox.from_corners(min(xs), min(ys), max(xs), max(ys))

    @property
    def bbox_area(self) -> float:
        """Bounding-box area, used for reporting only."""
        return self.bbox.area

    def to_list(self) -> list[list[float]]:
        return [[x, y] for x, y in self.points]


Geometry = Union[BBox, Polygon]


# ═══════════════════════════════════════════════════════════════════════════════
# Canonical Annotation Model
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Image:
    """Pixel canvas an annotation belongs to."""

    id: int
    file_name: str
    width: int = 0
    height: int = 0


@dataclass(frozen=True)
class Category:
    """Object class. `name` keeps the first-seen spelling."""

    id: int
    name: str

    @property
    def key(self) -> str:
        return normalize_label(self.name)


@dataclass(frozen=True)
class Annotation:
    """
    One labelled shape.

    `attributes` always has a "label" entry carrying the raw label string,
    plus any named attributes copied verbatim from the source.
    """

    id: int
    image_id: int
    category_id: int
    geometry: Geometry
    attributes: dict[str, str] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.attributes.get("label", "")

    @property
    def is_polygon(self) -> bool:
        return isinstance(self.geometry, Polygon)

    @property
    def bbox(self) -> BBox:
        if isinstance(self.geometry, Polygon):
            return self.geometry.bbox
        return self.geometry

    @property
    def ring(self) -> tuple[Point, ...]:
        """Polygon vertices, or the four corners of a box."""
        if isinstance(self.geometry, Polygon):
            return self.geometry.points
        return self.geometry.to_polygon().points

    def attribute(self, name: str) -> str | None:
        return self.attributes.get(name)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "image_id": self.image_id,
            "category_id": self.category_id,
            "bbox": self.bbox.to_list(),
            "attributes": dict(self.attributes),
        }
        if isinstance(self.geometry, Polygon):
            data["segmentation"] = [self.geometry.to_list()]
            data["area"] = self.geometry.bbox_area
        return data


@dataclass
class AnnotationSet:
    """Everything ingested from one annotation file."""

    images: list[Image] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    annotations: list[Annotation] = field(default_factory=list)
    source_format: str = ""

    def __len__(self) -> int:
        return len(self.annotations)

    def image(self, image_id: int) -> Image | None:
        for image in self.images:
            if image.id == image_id:
                return image
        return None

    def category(self, category_id: int) -> Category | None:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    def category_name(self, annotation: Annotation) -> str:
        """Display name of an annotation's category, falling back to its raw label."""
        category = self.category(annotation.category_id)
        return category.name if category else annotation.label

    def category_key(self, annotation: Annotation) -> str:
        """Normalized category name, comparable across files."""
        return normalize_label(self.category_name(annotation))

    @property
    def has_polygons(self) -> bool:
        return any(a.is_polygon for a in self.annotations)


# ═══════════════════════════════════════════════════════════════════════════════
# Evaluation Results
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class Match:
    """
    A GT annotation paired with a student annotation.

    `deviation_score`, `polygon_score` and `final_score` are None for
    rectangles, which are scored by IoU, label and attributes only.
    """

    gt: Annotation
    student: Annotation
    iou: float
    method: Literal["key", "geometry"] = "geometry"
    label_match: bool = True
    attribute_similarities: dict[str, float] = field(default_factory=dict)
    attribute_score: float = 100.0
    deviation_score: float | None = None
    polygon_score: float | None = None
    final_score: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "image_id": self.gt.image_id,
            "gt_id": self.gt.id,
            "student_id": self.student.id,
            "gt_label": self.gt.label,
            "student_label": self.student.label,
            "method": self.method,
            "iou": self.iou,
            "label_match": self.label_match,
            "attribute_similarities": dict(self.attribute_similarities),
            "attribute_score": self.attribute_score,
            "deviation_score": self.deviation_score,
            "polygon_score": self.polygon_score,
            "final_score": self.final_score,
        }


@dataclass
class MissedAnnotation:
    """GT annotation with no student counterpart."""

    gt: Annotation

    def to_dict(self) -> dict[str, Any]:
        return {"image_id": self.gt.image_id, "gt_id": self.gt.id, "gt_label": self.gt.label}


@dataclass
class ExtraAnnotation:
    """Student annotation with no GT counterpart."""

    student: Annotation

    def to_dict(self) -> dict[str, Any]:
        return {
            "image_id": self.student.image_id,
            "student_id": self.student.id,
            "student_label": self.student.label,
        }


@dataclass
class ImageEvaluationResult:
    """Matched, missed and extra annotations for one image."""

    image_id: int
    image_name: str
    matched: list[Match] = field(default_factory=list)
    missed: list[MissedAnnotation] = field(default_factory=list)
    extra: list[ExtraAnnotation] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "image_id": self.image_id,
            "image_name": self.image_name,
            "matched": [m.to_dict() for m in self.matched],
            "missed": [m.to_dict() for m in self.missed],
            "extra": [e.to_dict() for e in self.extra],
        }


@dataclass
class LabelAccuracy:
    """How many matched pairs agree on the label."""

    correct: int = 0
    total: int = 0

    @property
    def accuracy(self) -> float:
        """Percentage of correct labels (0-100)."""
        if self.total == 0:
            return 0.0
        return self.correct / self.total * 100

    def to_dict(self) -> dict[str, Any]:
        return {"correct": self.correct, "total": self.total, "accuracy": self.accuracy}


@dataclass
class AttributeAccuracy:
    """Attribute agreement summed over every individual comparison."""

    similarity_sum: float = 0.0
    comparisons: int = 0

    @property
    def average_similarity(self) -> float:
        """Mean similarity (0-100); 100 when nothing was compared."""
        if self.comparisons == 0:
            return 100.0
        return self.similarity_sum / self.comparisons * 100

    def to_dict(self) -> dict[str, Any]:
        return {"average_similarity": self.average_similarity, "total": self.comparisons}


@dataclass
class EvaluationResult:
    """
    The outcome of evaluating one student file against the GT.

    Built once per evaluation call and not mutated afterwards.

    Example:
        >>> result = annoeval.evaluate(gt_text, student_text, schema)
        >>> print(result.score, result.feedback[0])
        >>> for miss in result.missed:
        ...     print(miss.gt.label)
    """

    tool_type: ToolType
    score: int
    raw_score: float
    feedback: list[str] = field(default_factory=list)
    critical_issues: list[str] = field(default_factory=list)
    matched: list[Match] = field(default_factory=list)
    missed: list[MissedAnnotation] = field(default_factory=list)
    extra: list[ExtraAnnotation] = field(default_factory=list)
    image_results: list[ImageEvaluationResult] = field(default_factory=list)
    average_iou: float = 0.0
    precision: float = 0.0
    recall: float = 0.0
    label_accuracy: LabelAccuracy = field(default_factory=LabelAccuracy)
    attribute_accuracy: AttributeAccuracy = field(default_factory=AttributeAccuracy)

    # Format-specific components, e.g. detection_score or completeness_score
    breakdown: dict[str, float] = field(default_factory=dict)

    student_filename: str = ""
    source: str = "rule-based"

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.

        Returns:
            Dictionary representation of the result
        """
        return {
            "student_filename": self.student_filename,
            "source": self.source,
            "tool_type": self.tool_type.value,
            "score": self.score,
            "raw_score": self.raw_score,
            "feedback": list(self.feedback),
            "critical_issues": list(self.critical_issues),
            "average_iou": self.average_iou,
            "precision": self.precision,
            "recall": self.recall,
            "label_accuracy": self.label_accuracy.to_dict(),
            "attribute_accuracy": self.attribute_accuracy.to_dict(),
            "breakdown": dict(self.breakdown),
            "matched": [m.to_dict() for m in self.matched],
            "missed": [m.to_dict() for m in self.missed],
            "extra": [e.to_dict() for e in self.extra],
            "image_results": [r.to_dict() for r in self.image_results],
        }
