"""Evaluation schema: label/attribute catalogue and optional match key.

The schema is produced by an external extraction step and handed to the
engine as read-only configuration. This module provides:
1. LabelSchema / EvalSchema - Frozen schema types
2. load_schema() - Read a schema from a YAML or JSON file
3. validate_schema() - Check a schema against GT data
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from annoeval.exceptions import ConfigurationError, SchemaMismatchError
from annoeval.models import AnnotationSet, normalize_label

LABEL_ATTRIBUTE = "label"


@dataclass(frozen=True)
class LabelSchema:
    """One label and the attribute names declared for it."""

    name: str
    attributes: tuple[str, ...] = ()


@dataclass(frozen=True)
class EvalSchema:
    """
    Label/attribute catalogue plus an optional match key.

    `match_key` names an attribute whose value is a stable identifier
    (e.g. a track number) linking GT and student annotations directly.

    Example:
        >>> schema = EvalSchema.from_dict({
        ...     "labels": [{"name": "car", "attributes": ["color", "track_id"]}],
        ...     "matchKey": "track_id",
        ... })
        >>> schema.compared_attributes("Car")
        ['color']
    """

    labels: tuple[LabelSchema, ...] = ()
    match_key: str | None = None
    pseudo_code: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvalSchema:
        """Build a schema from the collaborator's dict (camelCase or snake_case keys)."""
        if not isinstance(data, dict):
            raise ConfigurationError(f"schema must be a mapping, got {type(data).__name__}")

        labels = []
        for entry in data.get("labels") or []:
            if not isinstance(entry, dict) or "name" not in entry:
                raise ConfigurationError(f"schema label entries need a 'name', got {entry!r}")
            labels.append(
                LabelSchema(
                    name=str(entry["name"]),
                    attributes=tuple(str(a) for a in entry.get("attributes") or []),
                )
            )

        match_key = data.get("matchKey", data.get("match_key")) or None
        pseudo_code = data.get("pseudoCode", data.get("pseudo_code")) or ""
        return cls(
            labels=tuple(labels),
            match_key=str(match_key) if match_key is not None else None,
            pseudo_code=str(pseudo_code),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "labels": [
                {"name": label.name, "attributes": list(label.attributes)} for label in self.labels
            ],
            "pseudoCode": self.pseudo_code,
        }
        if self.match_key:
            data["matchKey"] = self.match_key
        return data

    def label_schema(self, name: str) -> LabelSchema | None:
        """Find a label by case- and punctuation-insensitive name."""
        key = normalize_label(name)
        for label in self.labels:
            if normalize_label(label.name) == key:
                return label
        return None

    def compared_attributes(self, name: str) -> list[str]:
        """Declared attributes of a label, minus the match key and the label itself."""
        label = self.label_schema(name)
        if label is None:
            return []
        return [a for a in label.attributes if a != self.match_key and a != LABEL_ATTRIBUTE]

    def without_match_key(self) -> EvalSchema:
        return replace(self, match_key=None)


def load_schema(path: str | Path) -> EvalSchema:
    """
    Load an EvalSchema from a YAML or JSON file.

    Args:
        path: Path to the schema file

    Returns:
        The parsed schema

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigurationError: If the content is not a valid schema
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not parse schema file {path}: {e}") from e
    return EvalSchema.from_dict(data or {})


def validate_schema(schema: EvalSchema, gt: AnnotationSet) -> None:
    """
    Check that a schema refers to data present in the GT set.

    Raises:
        SchemaMismatchError: If no GT annotation carries the match key,
            or schema labels are absent from the GT categories
    """
    problems = []

    match_key_missing = False
    if schema.match_key and gt.annotations:
        if not any(a.attribute(schema.match_key) for a in gt.annotations):
            match_key_missing = True
            problems.append(f"match key {schema.match_key!r} not found on any GT annotation")

    gt_keys = {c.key for c in gt.categories}
    missing_labels = tuple(
        label.name for label in schema.labels if normalize_label(label.name) not in gt_keys
    )
    if missing_labels:
        problems.append(f"schema labels not present in GT: {', '.join(missing_labels)}")

    if problems:
        raise SchemaMismatchError(
            "; ".join(problems),
            match_key_missing=match_key_missing,
            missing_labels=missing_labels,
        )
