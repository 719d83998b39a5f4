"""
annoeval: Grade image annotations against a ground truth.

This library reads CVAT XML and COCO JSON annotation files, pairs each
student annotation with its ground-truth counterpart, and turns the
pairing into a 0-100 score with human-readable feedback.

Example:
    >>> import annoeval
    >>> result = annoeval.evaluate(gt_xml, student_xml, {"labels": [{"name": "car"}]})
    >>> print(result.score)
    >>> for line in result.feedback:
    ...     print(line)

    >>> # Grade a whole class
    >>> for name, outcome in annoeval.evaluate_batch(gt_xml, submissions):
    ...     print(name, getattr(outcome, "score", outcome))
"""

from annoeval.config import AttributePolicy, EvaluationConfig
from annoeval.evaluate import (
    evaluate,
    evaluate_batch,
    evaluate_boxes,
    evaluate_polygons,
)
from annoeval.exceptions import (
    AnnoEvalError,
    ConfigurationError,
    GeometryFailure,
    MalformedInputError,
    SchemaMismatchError,
)
from annoeval.ingest import detect_format, ingest, supported_formats
from annoeval.models import (
    # Canonical model
    Annotation,
    AnnotationSet,
    # Results
    AttributeAccuracy,
    BBox,
    Category,
    EvaluationResult,
    ExtraAnnotation,
    Image,
    ImageEvaluationResult,
    LabelAccuracy,
    Match,
    MissedAnnotation,
    Polygon,
    # Enums
    ToolType,
)
from annoeval.schema import EvalSchema, LabelSchema, load_schema, validate_schema

__version__ = "0.1.0"
__all__ = [
    # Main API
    "evaluate",
    "evaluate_batch",
    "evaluate_boxes",
    "evaluate_polygons",
    "ingest",
    "detect_format",
    "supported_formats",
    # Configuration
    "EvaluationConfig",
    "AttributePolicy",
    # Schema
    "EvalSchema",
    "LabelSchema",
    "load_schema",
    "validate_schema",
    # Canonical model
    "Image",
    "Category",
    "BBox",
    "Polygon",
    "Annotation",
    "AnnotationSet",
    # Enums
    "ToolType",
    # Results
    "EvaluationResult",
    "ImageEvaluationResult",
    "Match",
    "MissedAnnotation",
    "ExtraAnnotation",
    "LabelAccuracy",
    "AttributeAccuracy",
    # Exceptions
    "AnnoEvalError",
    "MalformedInputError",
    "SchemaMismatchError",
    "GeometryFailure",
    "ConfigurationError",
]
