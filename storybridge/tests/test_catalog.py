"""Tests for FieldCatalog and FieldDefinition schema rendering."""
import pytest

from storybridge.catalog.fields import (
    FIELD_CATALOG,
    Aggregation,
    FieldCatalog,
    FieldDefinition,
    FieldRole,
    SemanticType,
)
from storybridge.errors import UnknownFieldError


class TestCatalogContents:
    def test_catalog_order(self):
        ids = [f.id for f in FieldCatalog().list_all()]
        assert ids == ["completed", "created", "teams", "storyType", "count"]

    def test_ids_unique(self):
        ids = [f.id for f in FIELD_CATALOG]
        assert len(ids) == len(set(ids))

    def test_count_is_summed_metric(self):
        count = next(f for f in FIELD_CATALOG if f.id == "count")
        assert count.role is FieldRole.METRIC
        assert count.semantic_type is SemanticType.NUMBER
        assert count.aggregation is Aggregation.SUM

    def test_duplicate_ids_rejected(self):
        dup = FieldDefinition(id="x", label="X", semantic_type=SemanticType.TEXT)
        with pytest.raises(ValueError):
            FieldCatalog([dup, dup])

    def test_definitions_are_immutable(self):
        with pytest.raises(Exception):
            FIELD_CATALOG[0].id = "other"


class TestResolve:
    def test_preserves_caller_order(self):
        fields = FieldCatalog().resolve(["count", "teams", "completed"])
        assert [f.id for f in fields] == ["count", "teams", "completed"]

    def test_subset(self):
        fields = FieldCatalog().resolve(["storyType"])
        assert len(fields) == 1
        assert fields[0].label == "Story Type"

    def test_repeated_id_kept(self):
        fields = FieldCatalog().resolve(["count", "count"])
        assert [f.id for f in fields] == ["count", "count"]

    def test_unknown_id_raises(self):
        with pytest.raises(UnknownFieldError) as exc_info:
            FieldCatalog().resolve(["created", "owner", "epic"])
        assert exc_info.value.field_ids == ["owner", "epic"]

    def test_ids_are_case_sensitive(self):
        with pytest.raises(UnknownFieldError):
            FieldCatalog().resolve(["storytype"])

    def test_contains(self):
        catalog = FieldCatalog()
        assert "teams" in catalog
        assert "team" not in catalog


class TestSchema:
    def test_date_dimension(self):
        entry = FieldCatalog().resolve(["completed"])[0].to_schema()
        assert entry == {
            "name": "completed",
            "label": "Completed",
            "dataType": "STRING",
            "semantics": {"conceptType": "DIMENSION", "semanticType": "YEAR_MONTH_DAY"},
        }

    def test_metric_carries_aggregation(self):
        entry = FieldCatalog().resolve(["count"])[0].to_schema()
        assert entry["dataType"] == "NUMBER"
        assert entry["semantics"]["conceptType"] == "METRIC"
        assert entry["semantics"]["isReaggregatable"] is True
        assert entry["defaultAggregationType"] == "SUM"

    def test_full_schema_matches_catalog(self):
        schema = FieldCatalog().schema()
        assert [e["name"] for e in schema] == [f.id for f in FIELD_CATALOG]
