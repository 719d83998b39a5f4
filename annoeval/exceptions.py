"""
Exception classes for annoeval.

All annoeval exceptions inherit from AnnoEvalError,
making it easy to catch all library errors.

Example:
    >>> try:
    ...     result = annoeval.evaluate(gt_text, student_text, schema)
    ... except annoeval.MalformedInputError as e:
    ...     print(f"Could not read submission: {e}")
    ... except annoeval.AnnoEvalError as e:
    ...     print(f"annoeval error: {e}")
"""


class AnnoEvalError(Exception):
    """
    Base exception for all annoeval errors.

    Catch this to handle any annoeval-specific error.
    """

    pass


class MalformedInputError(AnnoEvalError):
    """
    Raised when annotation content cannot be ingested.

    The content is neither CVAT XML nor COCO JSON, or a required
    field (image id, box corner, geometry) is missing or not numeric.

    Example:
        >>> annoeval.ingest("not an annotation file")
        MalformedInputError: Unrecognized annotation format: expected XML or a JSON object
    """

    pass


class SchemaMismatchError(AnnoEvalError):
    """
    Raised when an EvalSchema references data absent from the GT set.

    This is a soft condition: with config.on_schema_mismatch == "warn"
    the evaluator logs it and falls back to geometry-only matching.
    """

    def __init__(
        self,
        message: str,
        match_key_missing: bool = False,
        missing_labels: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message)
        self.match_key_missing = match_key_missing
        self.missing_labels = missing_labels


class GeometryFailure(AnnoEvalError):
    """
    Raised when polygon clipping cannot produce a result.

    Degenerate or self-intersecting rings end up here. polygon_iou()
    catches it and treats the pair as non-overlapping.
    """

    pass


class ConfigurationError(AnnoEvalError, ValueError):
    """
    Raised for invalid configuration.

    Example:
        >>> EvaluationConfig(box_iou_threshold=1.5)
        ConfigurationError: box_iou_threshold must be between 0.0 and 1.0, got 1.5
    """

    pass
