"""
Configuration for annotation evaluation.

By default rectangles are matched greedily at IoU > 0.5 and compare
attributes by edit-distance similarity. Polygons are matched optimally at
IoU >= 0.1 and compare attributes exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from annoeval.exceptions import ConfigurationError
from annoeval.models import normalize_label

AttributeStrategy = Literal["exact", "similarity"]

VALID_STRATEGIES = ("exact", "similarity")


@dataclass
class AttributePolicy:
    """
    Per-attribute comparison strategy.

    "exact" scores 1.0 for identical values and 0.0 otherwise.
    "similarity" scores normalized edit-distance similarity, which suits
    free-text fields such as a license-plate reading.

    Example:
        >>> policy = AttributePolicy(default="exact", overrides={"plate_text": "similarity"})
        >>> policy.strategy_for("car", "plate_text")
        'similarity'
    """

    default: AttributeStrategy = "exact"

    # attribute name -> strategy
    overrides: dict[str, AttributeStrategy] = field(default_factory=dict)

    # label name -> {attribute name -> strategy}; wins over `overrides`
    label_overrides: dict[str, dict[str, AttributeStrategy]] = field(default_factory=dict)

    def __post_init__(self):
        """Validate configuration."""
        strategies = [self.default, *self.overrides.values()]
        for per_label in self.label_overrides.values():
            strategies.extend(per_label.values())
        for strategy in strategies:
            if strategy not in VALID_STRATEGIES:
                raise ConfigurationError(
                    f"attribute strategy must be one of {VALID_STRATEGIES}, got {strategy!r}"
                )

    def strategy_for(self, label: str, attribute: str) -> AttributeStrategy:
        """Return the comparison strategy for one attribute of one label."""
        key = normalize_label(label)
        for name, per_label in self.label_overrides.items():
            if normalize_label(name) == key and attribute in per_label:
                return per_label[attribute]
        return self.overrides.get(attribute, self.default)


@dataclass
class EvaluationConfig:
    """
    Configuration for one evaluation run.

    All options have sensible defaults. Create a config only
    if you need to customize behavior.

    Example:
        >>> config = EvaluationConfig(
        ...     polygon_iou_threshold=0.25,
        ...     on_schema_mismatch="raise",
        ... )
        >>> result = annoeval.evaluate(gt_text, student_text, schema, config=config)
    """

    # Matching thresholds
    box_iou_threshold: float = 0.5  # strict: IoU must exceed this
    polygon_iou_threshold: float = 0.1  # inclusive: IoU must reach this
    box_require_same_category: bool = False

    # Vertex deviation bands (perfect, minor, moderate) in pixels
    deviation_bands: tuple[float, float, float] = (2.0, 5.0, 10.0)

    # Attribute comparison
    box_attribute_policy: AttributePolicy = field(
        default_factory=lambda: AttributePolicy(default="similarity")
    )
    polygon_attribute_policy: AttributePolicy = field(
        default_factory=lambda: AttributePolicy(default="exact")
    )

    # Error handling
    on_schema_mismatch: Literal["raise", "warn"] = "warn"

    # Batch execution
    max_workers: int = 4

    def __post_init__(self):
        """Validate configuration."""
        for name in ("box_iou_threshold", "polygon_iou_threshold"):
            value = getattr(self, name)
            if value < 0.0 or value > 1.0:
                raise ConfigurationError(f"{name} must be between 0.0 and 1.0, got {value}")

        bands = tuple(self.deviation_bands)
        if len(bands) != 3 or any(b <= 0 for b in bands) or list(bands) != sorted(bands):
            raise ConfigurationError(
                f"deviation_bands must be three increasing positive values, got {bands!r}"
            )

        valid_modes = ("raise", "warn")
        if self.on_schema_mismatch not in valid_modes:
            raise ConfigurationError(
                f"on_schema_mismatch must be one of {valid_modes}, "
                f"got {self.on_schema_mismatch!r}"
            )

        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")
