"""
Basic tests for annoeval package structure.

These tests verify the public API is importable and
basic configuration works correctly.
"""

import pytest


class TestImports:
    """Test that the public API is importable."""

    def test_import_package(self):
        """Can import the main package."""
        import annoeval

        assert annoeval.__version__ == "0.1.0"

    def test_import_evaluate_functions(self):
        """Can import the main evaluate functions."""
        from annoeval import evaluate, evaluate_batch, evaluate_boxes, evaluate_polygons

        assert callable(evaluate)
        assert callable(evaluate_batch)
        assert callable(evaluate_boxes)
        assert callable(evaluate_polygons)

    def test_import_config(self):
        """Can import configuration classes."""
        from annoeval import AttributePolicy, EvaluationConfig

        config = EvaluationConfig()
        assert isinstance(config.box_attribute_policy, AttributePolicy)

    def test_import_core_types(self):
        """Can import core data types."""
        from annoeval import BBox, ToolType

        assert ToolType.POLYGON.value == "polygon"
        assert BBox(0, 0, 2, 3).area == 6

    def test_all_exports_exist(self):
        import annoeval

        for name in annoeval.__all__:
            assert hasattr(annoeval, name), name


class TestExceptions:
    """Test the exception hierarchy."""

    def test_hierarchy(self):
        from annoeval import (
            AnnoEvalError,
            ConfigurationError,
            GeometryFailure,
            MalformedInputError,
            SchemaMismatchError,
        )

        for exc in (ConfigurationError, GeometryFailure, MalformedInputError, SchemaMismatchError):
            assert issubclass(exc, AnnoEvalError)
        assert issubclass(ConfigurationError, ValueError)

    def test_catch_all(self):
        from annoeval import AnnoEvalError, ingest

        with pytest.raises(AnnoEvalError):
            ingest("not an annotation file")

    def test_schema_mismatch_details(self):
        from annoeval import SchemaMismatchError

        error = SchemaMismatchError("bad", match_key_missing=True, missing_labels=("bus",))
        assert str(error) == "bad"
        assert error.match_key_missing is True
        assert error.missing_labels == ("bus",)
