"""Annotation file readers.

One reader per supported dialect, each returning an AnnotationSet.
"""

from annoeval.readers.coco_json import read_coco_json
from annoeval.readers.cvat_xml import read_cvat_xml
from annoeval.readers.vocabulary import CategoryVocabulary

__all__ = [
    # Readers
    "read_cvat_xml",
    "read_coco_json",
    # Category identity
    "CategoryVocabulary",
]
