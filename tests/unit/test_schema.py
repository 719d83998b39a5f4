"""Tests for annoeval.schema."""

import json

import pytest

from annoeval.exceptions import ConfigurationError, SchemaMismatchError
from annoeval.models import Annotation, AnnotationSet, BBox, Category
from annoeval.schema import EvalSchema, LabelSchema, load_schema, validate_schema


def make_gt(*labels_and_attrs) -> AnnotationSet:
    """GT set with one box per (label, attributes) pair."""
    categories: dict[str, Category] = {}
    annotations = []
    for i, (label, attrs) in enumerate(labels_and_attrs, start=1):
        category = categories.setdefault(label, Category(len(categories) + 1, label))
        annotations.append(
            Annotation(
                id=i,
                image_id=0,
                category_id=category.id,
                geometry=BBox(0, 0, 10, 10),
                attributes={"label": label, **attrs},
            )
        )
    return AnnotationSet(categories=list(categories.values()), annotations=annotations)


class TestEvalSchema:
    """Tests for EvalSchema construction and lookups."""

    def test_from_dict_camel_case(self):
        schema = EvalSchema.from_dict(
            {
                "labels": [{"name": "car", "attributes": ["color", "track_id"]}],
                "matchKey": "track_id",
                "pseudoCode": "match by track",
            }
        )
        assert schema.labels == (LabelSchema("car", ("color", "track_id")),)
        assert schema.match_key == "track_id"
        assert schema.pseudo_code == "match by track"

    def test_from_dict_snake_case(self):
        schema = EvalSchema.from_dict({"labels": [{"name": "car"}], "match_key": "id"})
        assert schema.match_key == "id"
        assert schema.labels[0].attributes == ()

    def test_empty_match_key_is_none(self):
        assert EvalSchema.from_dict({"labels": [], "matchKey": ""}).match_key is None

    def test_not_a_mapping(self):
        with pytest.raises(ConfigurationError):
            EvalSchema.from_dict(["car"])

    def test_label_without_name(self):
        with pytest.raises(ConfigurationError):
            EvalSchema.from_dict({"labels": [{"attributes": ["color"]}]})

    def test_compared_attributes_skip_key_and_label(self):
        schema = EvalSchema(
            labels=(LabelSchema("Car", ("label", "color", "track_id")),),
            match_key="track_id",
        )
        assert schema.compared_attributes("car") == ["color"]
        assert schema.compared_attributes("bus") == []

    def test_to_dict(self):
        schema = EvalSchema(labels=(LabelSchema("car", ("color",)),), match_key="track_id")
        assert schema.to_dict() == {
            "labels": [{"name": "car", "attributes": ["color"]}],
            "pseudoCode": "",
            "matchKey": "track_id",
        }

    def test_without_match_key(self):
        schema = EvalSchema(match_key="track_id")
        assert schema.without_match_key().match_key is None
        assert schema.match_key == "track_id"


class TestLoadSchema:
    """Tests for reading schema files."""

    def test_yaml(self, tmp_path):
        path = tmp_path / "schema.yaml"
        path.write_text("labels:\n  - name: car\n    attributes: [color]\nmatchKey: track_id\n")
        schema = load_schema(path)
        assert schema.label_schema("car").attributes == ("color",)
        assert schema.match_key == "track_id"

    def test_json(self, tmp_path):
        path = tmp_path / "schema.json"
        path.write_text(json.dumps({"labels": [{"name": "tree", "attributes": ["kind"]}]}))
        assert load_schema(path).compared_attributes("tree") == ["kind"]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "schema.yaml"
        path.write_text("")
        assert load_schema(path) == EvalSchema()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "schema.yaml"
        path.write_text("labels: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_schema(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_schema(tmp_path / "nope.yaml")


class TestValidateSchema:
    """Tests for validating a schema against GT data."""

    def test_valid(self):
        gt = make_gt(("car", {"track_id": "1"}))
        schema = EvalSchema(labels=(LabelSchema("Car"),), match_key="track_id")
        validate_schema(schema, gt)

    def test_missing_match_key(self):
        gt = make_gt(("car", {}))
        with pytest.raises(SchemaMismatchError) as exc_info:
            validate_schema(EvalSchema(match_key="track_id"), gt)
        assert exc_info.value.match_key_missing is True

    def test_missing_labels(self):
        gt = make_gt(("car", {}))
        schema = EvalSchema(labels=(LabelSchema("car"), LabelSchema("bus")))
        with pytest.raises(SchemaMismatchError) as exc_info:
            validate_schema(schema, gt)
        assert exc_info.value.missing_labels == ("bus",)
        assert exc_info.value.match_key_missing is False
