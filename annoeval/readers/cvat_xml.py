"""
CVAT XML reader.

Reads the CVAT "for images" export:

    <annotations>
      <image id="0" name="frames/img_0.jpg" width="640" height="480">
        <box label="car" xtl="10" ytl="20" xbr="110" ybr="80">
          <attribute name="color">red</attribute>
        </box>
        <polygon label="road" points="0,0;50,0;50,40"/>
      </image>
    </annotations>

Boxes and polygons become Annotations in document order, numbered from 1.
Untrusted input is parsed with defusedxml.
"""

from __future__ import annotations

import logging
from xml.etree.ElementTree import Element, ParseError

import defusedxml.ElementTree as ET
from defusedxml import DefusedXmlException

from annoeval.exceptions import MalformedInputError
from annoeval.models import Annotation, AnnotationSet, BBox, Image, Point, Polygon
from annoeval.readers.vocabulary import CategoryVocabulary

logger = logging.getLogger(__name__)

SHAPE_TAGS = ("box", "polygon")
DEFAULT_LABEL = "unknown"


def read_cvat_xml(content: str) -> AnnotationSet:
    """
    Parse CVAT XML text into an AnnotationSet.

    Args:
        content: Raw XML text

    Returns:
        AnnotationSet with source_format "cvat_xml"

    Raises:
        MalformedInputError: If the XML is invalid or a required field is missing
    """
    try:
        root = ET.fromstring(content)
    except (ParseError, DefusedXmlException) as e:
        raise MalformedInputError(f"Failed to parse XML: {e}") from e

    images: list[Image] = []
    seen_image_ids: set[int] = set()
    annotations: list[Annotation] = []
    vocabulary = CategoryVocabulary()

    image_nodes = [root] if root.tag == "image" else list(root.iter("image"))
    for image_node in image_nodes:
        image = _read_image(image_node)
        if image.id not in seen_image_ids:
            seen_image_ids.add(image.id)
            images.append(image)

        for shape_node in image_node:
            if shape_node.tag not in SHAPE_TAGS:
                continue
            label = shape_node.get("label") or DEFAULT_LABEL
            if shape_node.tag == "box":
                geometry = _read_box(shape_node)
            else:
                geometry = _read_polygon(shape_node)

            attributes = {"label": label}
            for attribute_node in shape_node.iter("attribute"):
                name = attribute_node.get("name")
                if name:
                    attributes[name] = attribute_node.text or ""

            annotations.append(
                Annotation(
                    id=len(annotations) + 1,
                    image_id=image.id,
                    category_id=vocabulary.resolve(label),
                    geometry=geometry,
                    attributes=attributes,
                )
            )

    logger.debug(
        "Read CVAT XML: %d images, %d annotations, %d categories",
        len(images),
        len(annotations),
        len(vocabulary),
    )
    return AnnotationSet(
        images=images,
        categories=vocabulary.categories,
        annotations=annotations,
        source_format="cvat_xml",
    )


def _read_image(node: Element) -> Image:
    raw_id = node.get("id")
    if raw_id is None:
        raise MalformedInputError("<image> element is missing its 'id' attribute")
    name = (node.get("name") or "").replace("\\", "/").split("/")[-1]
    return Image(
        id=_to_int(raw_id, "image id"),
        file_name=name,
        width=_to_int(node.get("width") or "0", "image width"),
        height=_to_int(node.get("height") or "0", "image height"),
    )


def _read_box(node: Element) -> BBox:
    corners = []
    for name in ("xtl", "ytl", "xbr", "ybr"):
        value = node.get(name)
        if value is None:
            raise MalformedInputError(f"<box> element is missing its '{name}' attribute")
        corners.append(_to_float(value, f"box {name}"))
    return BBox.from_corners(*corners)


def _read_polygon(node: Element) -> Polygon:
    raw = node.get("points")
    if not raw:
        raise MalformedInputError("<polygon> element is missing its 'points' attribute")
    return Polygon(points=tuple(_parse_points(raw)))


def _parse_points(raw: str) -> list[Point]:
    points = []
    for pair in raw.strip().split(";"):
        if not pair.strip():
            continue
        parts = pair.split(",")
        if len(parts) != 2:
            raise MalformedInputError(f"Invalid polygon point {pair!r}")
        points.append((_to_float(parts[0], "polygon x"), _to_float(parts[1], "polygon y")))
    return points


def _to_float(value: str, what: str) -> float:
    try:
        return float(value)
    except ValueError as e:
        raise MalformedInputError(f"Invalid {what}: {value!r}") from e


def _to_int(value: str, what: str) -> int:
    try:
        return int(float(value))
    except ValueError as e:
        raise MalformedInputError(f"Invalid {what}: {value!r}") from e
