"""Tests for the transform engine."""

from datetime import datetime, timezone

import pytest

from conftest import FIXED_NOW, USER_ID
from kvmigrate.errors import TransformError
from kvmigrate.models.mapping import DynamicMappingEntry, KeySuffixExtractor, MappingEntry, PrefixMatcher
from kvmigrate.models.record import ManyPayload, SinglePayload
from kvmigrate.services.transformer import TransformEngine

ITEMS = MappingEntry(key="items", table="items", payload_field="item_data", record_id_field="item_id")

CANVAS = DynamicMappingEntry(
    pattern="bmc-*",
    matcher=PrefixMatcher("bmc-"),
    table="bmc_canvas_data",
    payload_field="canvas_data",
    key_field="canvas_id",
    suffix_field="idea_id",
    suffix_extractor=KeySuffixExtractor("bmc-", exclude=("bmc-canvas",)),
)


@pytest.fixture
def engine():
    return TransformEngine()


class TestStaticEntries:

    def test_single_payload_without_record_id(self, engine):
        entry = MappingEntry(key="settings", table="user_settings", payload_field="value")

        rows = engine.transform(SinglePayload({"theme": "dark"}), entry, USER_ID, "settings", FIXED_NOW)

        assert len(rows) == 1
        assert rows[0].conflict_target == ("user_id",)
        assert rows[0].index is None
        assert rows[0].to_row() == {
            "user_id": USER_ID,
            "value": {"theme": "dark"},
            "last_modified": "2024-05-01T12:00:00+00:00",
        }

    def test_many_payload_expands(self, engine):
        record = ManyPayload(({"id": "a"}, {"name": "no id"}, {"id": ""}))

        rows = engine.transform(record, ITEMS, USER_ID, "items", FIXED_NOW)

        assert [row.record_id for row in rows] == ["a", "items:1", "items:2"]
        assert [row.index for row in rows] == [0, 1, 2]
        assert all(row.conflict_target == ("user_id", "item_id") for row in rows)
        assert rows[1].to_row()["item_id"] == "items:1"

    def test_single_object_falls_back_to_position(self, engine):
        rows = engine.transform(SinglePayload({"title": "x"}), ITEMS, USER_ID, "items", FIXED_NOW)
        assert rows[0].record_id == "items:0"

    def test_positional_ids_never_equal_payload_ids(self, engine):
        record = ManyPayload(({"x": "no id"}, {"id": 0, "x": "explicit id 0"}))

        rows = engine.transform(record, ITEMS, USER_ID, "items", FIXED_NOW)

        assert [row.record_id for row in rows] == ["items:0", "0"]

    def test_duplicate_payload_ids_are_rejected(self, engine):
        record = ManyPayload(({"id": "a"}, {"id": "b"}, {"id": "a"}))

        with pytest.raises(TransformError) as exc_info:
            engine.transform(record, ITEMS, USER_ID, "items", FIXED_NOW)

        assert exc_info.value.index == 2
        assert str(exc_info.value) == "Transform failed for item 2 of items: duplicate item_id 'a' (also item 0)"

    def test_numeric_ids_become_strings(self, engine):
        rows = engine.transform(ManyPayload(({"id": 7},)), ITEMS, USER_ID, "items", FIXED_NOW)
        assert rows[0].record_id == "7"

    def test_custom_record_id_source(self, engine):
        entry = MappingEntry(
            key="projects",
            table="projects",
            payload_field="data",
            record_id_field="project_id",
            record_id_source="projectId",
        )

        rows = engine.transform(ManyPayload(({"projectId": "p1"},)), entry, USER_ID, "projects", FIXED_NOW)

        assert rows[0].record_id == "p1"

    def test_array_kept_whole_when_not_expanding(self, engine):
        entry = MappingEntry(key="list", table="lists", payload_field="data", expand_arrays=False)

        rows = engine.transform(ManyPayload((1, 2)), entry, USER_ID, "list", FIXED_NOW)

        assert len(rows) == 1
        assert rows[0].payload == [1, 2]

    def test_naive_timestamp_is_treated_as_utc(self, engine):
        entry = MappingEntry(key="settings", table="user_settings", payload_field="value")

        rows = engine.transform(SinglePayload(1), entry, USER_ID, "settings", datetime(2024, 1, 1))

        assert rows[0].to_row()["last_modified"] == datetime(2024, 1, 1, tzinfo=timezone.utc).isoformat()


class TestDynamicEntries:

    def test_key_and_suffix_are_written(self, engine):
        rows = engine.transform(SinglePayload({"blocks": []}), CANVAS, USER_ID, "bmc-42", FIXED_NOW)

        assert len(rows) == 1
        assert rows[0].conflict_target == ("user_id", "canvas_id")
        assert rows[0].to_row() == {
            "user_id": USER_ID,
            "canvas_data": {"blocks": []},
            "last_modified": FIXED_NOW.isoformat(),
            "canvas_id": "bmc-42",
            "idea_id": "42",
        }

    def test_excluded_key_has_no_suffix(self, engine):
        rows = engine.transform(SinglePayload({}), CANVAS, USER_ID, "bmc-canvas", FIXED_NOW)
        assert "idea_id" not in rows[0].to_row()

    def test_array_is_one_row(self, engine):
        rows = engine.transform(ManyPayload((1, 2, 3)), CANVAS, USER_ID, "bmc-1", FIXED_NOW)

        assert len(rows) == 1
        assert rows[0].payload == [1, 2, 3]
        assert rows[0].index is None


class TestTransforms:

    def test_drop_nulls(self, engine):
        entry = MappingEntry(
            key="settings",
            table="user_settings",
            payload_field="value",
            transform=engine.resolve("drop_nulls"),
        )

        rows = engine.transform(SinglePayload({"a": 1, "b": None}), entry, USER_ID, "settings", FIXED_NOW)

        assert rows[0].payload == {"a": 1}

    def test_custom_transform_shadows_builtin(self, engine):
        engine.register_transform("identity", lambda payload: "custom")
        assert engine.resolve("identity")({"a": 1}) == "custom"

    def test_unknown_transform(self, engine):
        with pytest.raises(ValueError):
            engine.resolve("nope")

    def test_available_transforms(self, engine):
        engine.register_transform("upper", str.upper)
        assert engine.available_transforms == ["drop_nulls", "identity", "upper"]

    def test_failure_reports_item_index(self, engine):
        def reject_second(item):
            if item == 2:
                raise ValueError("bad item")
            return item

        entry = MappingEntry(key="items", table="items", payload_field="d", record_id_field="i", transform=reject_second)

        with pytest.raises(TransformError) as exc_info:
            engine.transform(ManyPayload((1, 2)), entry, USER_ID, "items", FIXED_NOW)

        assert exc_info.value.index == 1
        assert str(exc_info.value) == "Transform failed for item 1 of items: bad item"
