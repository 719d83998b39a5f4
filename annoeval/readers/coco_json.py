"""
COCO-style JSON reader.

Expects an object with `images`, `annotations` and `categories` lists.
Ids are taken from the file as-is. An annotation's geometry comes from
its first `segmentation` ring when present, otherwise from `bbox`.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from annoeval.exceptions import MalformedInputError
from annoeval.models import Annotation, AnnotationSet, BBox, Category, Geometry, Image, Polygon

logger = logging.getLogger(__name__)

REQUIRED_SECTIONS = ("images", "annotations", "categories")


def read_coco_json(content: str) -> AnnotationSet:
    """
    Parse COCO JSON text into an AnnotationSet.

    Args:
        content: Raw JSON text

    Returns:
        AnnotationSet with source_format "coco_json"

    Raises:
        MalformedInputError: If the JSON is invalid or a required field is missing
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"Failed to parse JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedInputError("COCO JSON must be an object")
    for section in REQUIRED_SECTIONS:
        if not isinstance(data.get(section), list):
            raise MalformedInputError(f"COCO JSON is missing the '{section}' list")

    images = [_read_image(entry) for entry in data["images"]]
    categories = [_read_category(entry) for entry in data["categories"]]
    names = {c.id: c.name for c in categories}
    annotations = [_read_annotation(entry, names) for entry in data["annotations"]]

    logger.debug(
        "Read COCO JSON: %d images, %d annotations, %d categories",
        len(images),
        len(annotations),
        len(categories),
    )
    return AnnotationSet(
        images=images,
        categories=categories,
        annotations=annotations,
        source_format="coco_json",
    )


def _require(entry: Any, key: str, section: str) -> Any:
    if not isinstance(entry, dict):
        raise MalformedInputError(f"Entries of '{section}' must be objects, got {entry!r}")
    if key not in entry:
        raise MalformedInputError(f"An entry of '{section}' is missing '{key}'")
    return entry[key]


def _read_image(entry: Any) -> Image:
    image_id = _as_int(_require(entry, "id", "images"), "image id")
    return Image(
        id=image_id,
        file_name=str(entry.get("file_name", "")),
        width=_as_int(entry.get("width", 0), "image width"),
        height=_as_int(entry.get("height", 0), "image height"),
    )


def _read_category(entry: Any) -> Category:
    return Category(
        id=_as_int(_require(entry, "id", "categories"), "category id"),
        name=str(_require(entry, "name", "categories")),
    )


def _read_annotation(entry: Any, category_names: dict[int, str]) -> Annotation:
    annotation_id = _as_int(_require(entry, "id", "annotations"), "annotation id")
    image_id = _as_int(_require(entry, "image_id", "annotations"), "image_id")
    category_id = _as_int(_require(entry, "category_id", "annotations"), "category_id")

    raw_attributes = entry.get("attributes") or {}
    if not isinstance(raw_attributes, dict):
        raise MalformedInputError(f"Annotation {annotation_id} attributes must be an object")
    attributes = {str(k): _as_text(v) for k, v in raw_attributes.items()}
    if "label" not in attributes:
        attributes["label"] = category_names.get(category_id, "")

    return Annotation(
        id=annotation_id,
        image_id=image_id,
        category_id=category_id,
        geometry=_read_geometry(entry, annotation_id),
        attributes=attributes,
    )


def _read_geometry(entry: dict[str, Any], annotation_id: int) -> Geometry:
    segmentation = entry.get("segmentation")
    if isinstance(segmentation, list) and segmentation:
        return Polygon(points=tuple(_ring_points(segmentation[0], annotation_id)))

    bbox = entry.get("bbox")
    if isinstance(bbox, list) and len(bbox) == 4:
        x, y, w, h = (_as_float(v, "bbox value") for v in bbox)
        return BBox(x=x, y=y, width=w, height=h)

    raise MalformedInputError(f"Annotation {annotation_id} has neither a bbox nor a segmentation")


def _ring_points(ring: Any, annotation_id: int) -> list[tuple[float, float]]:
    """Accept both flat [x1, y1, x2, y2, ...] and paired [[x, y], ...] rings."""
    if not isinstance(ring, list):
        raise MalformedInputError(f"Annotation {annotation_id} has an invalid segmentation")
    if ring and all(isinstance(p, (list, tuple)) for p in ring):
        pairs = ring
    else:
        if len(ring) % 2:
            raise MalformedInputError(
                f"Annotation {annotation_id} segmentation has an odd number of values"
            )
        pairs = [ring[i : i + 2] for i in range(0, len(ring), 2)]

    points = []
    for pair in pairs:
        if len(pair) < 2:
            raise MalformedInputError(f"Annotation {annotation_id} has an invalid point {pair!r}")
        points.append((_as_float(pair[0], "polygon x"), _as_float(pair[1], "polygon y")))
    return points


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _as_float(value: Any, what: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise MalformedInputError(f"Invalid {what}: {value!r}") from e


def _as_int(value: Any, what: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise MalformedInputError(f"Invalid {what}: {value!r}") from e
