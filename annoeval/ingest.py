"""
Annotation ingestion.

Turns raw annotation text into the canonical AnnotationSet. File reading
and archive extraction happen in the caller; this module only sees
already-materialized strings.
"""

from __future__ import annotations

import logging

from annoeval.exceptions import MalformedInputError
from annoeval.models import AnnotationSet
from annoeval.readers import read_coco_json, read_cvat_xml

logger = logging.getLogger(__name__)

_READERS = {
    "cvat_xml": read_cvat_xml,
    "coco_json": read_coco_json,
}


def supported_formats() -> list[str]:
    """Return the list of supported annotation formats."""
    return list(_READERS)


def detect_format(raw_content: str) -> str:
    """
    Detect the annotation dialect by sniffing the first character.

    Args:
        raw_content: Raw annotation text

    Returns:
        "cvat_xml" for XML (prolog or root element), "coco_json" for a JSON object

    Raises:
        MalformedInputError: If the content is neither
    """
    text = raw_content.lstrip("\ufeff \t\r\n")
    if text.startswith("<"):
        return "cvat_xml"
    if text.startswith("{"):
        return "coco_json"
    raise MalformedInputError("Unrecognized annotation format: expected XML or a JSON object")


def ingest(raw_content: str) -> AnnotationSet:
    """
    Convert annotation text into an AnnotationSet.

    Args:
        raw_content: CVAT XML or COCO JSON text

    Returns:
        AnnotationSet with sequential ids (XML) or the file's own ids (JSON)

    Raises:
        MalformedInputError: If the content cannot be parsed

    Example:
        >>> annotations = ingest(open("task.xml").read())
        >>> len(annotations), annotations.source_format
        (42, 'cvat_xml')
    """
    if not isinstance(raw_content, str) or not raw_content.strip():
        raise MalformedInputError("Annotation content is empty")

    fmt = detect_format(raw_content)
    logger.debug("Ingesting %s content (%d chars)", fmt, len(raw_content))
    return _READERS[fmt](raw_content.lstrip("\ufeff \t\r\n"))
