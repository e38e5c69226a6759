"""Tests for the in-memory remote store."""

from conftest import FIXED_NOW, USER_ID
from kvmigrate.loaders.base import RemoteErrorKind
from kvmigrate.loaders.memory_loader import InMemoryUpsertClient
from kvmigrate.models.record import TransformedRow


def test_upsert_inserts_then_overwrites():
    client = InMemoryUpsertClient()

    client.upsert("t", {"user_id": "u", "id": "1", "v": 1}, ("user_id", "id"))
    client.upsert("t", {"user_id": "u", "id": "1", "v": 2}, ("user_id", "id"))
    client.upsert("t", {"user_id": "u", "id": "2", "v": 3}, ("user_id", "id"))

    assert client.rows("t") == [
        {"user_id": "u", "id": "1", "v": 2},
        {"user_id": "u", "id": "2", "v": 3},
    ]


def test_rows_are_copies():
    client = InMemoryUpsertClient()
    client.upsert("t", {"user_id": "u", "v": {"a": 1}}, ("user_id",))

    client.rows("t")[0]["v"]["a"] = 99

    assert client.rows("t")[0]["v"] == {"a": 1}


def test_conflict_target_must_match_declared_constraint():
    client = InMemoryUpsertClient({"t": [("user_id", "id")]})

    result = client.upsert("t", {"user_id": "u", "id": "1"}, ("user_id",))

    assert not result.success
    assert result.error.kind == RemoteErrorKind.CONSTRAINT_VIOLATION
    assert result.error.code == "42P10"
    assert client.rows("t") == []


def test_declare_unique_accepts_column_order():
    client = InMemoryUpsertClient()
    client.declare_unique("t", "id", "user_id")

    assert client.upsert("t", {"user_id": "u", "id": "1"}, ("user_id", "id")).success


def test_null_conflict_column_is_rejected():
    client = InMemoryUpsertClient()

    result = client.upsert("t", {"user_id": None, "v": 1}, ("user_id",))

    assert result.error.code == "23502"
    assert not result.error.retryable


def test_unavailable_store():
    client = InMemoryUpsertClient(available=False)

    upsert = client.upsert("t", {"user_id": "u"}, ("user_id",))
    select = client.select_single("t", {"user_id": "u"})

    assert upsert.error.kind == RemoteErrorKind.CONNECTIVITY
    assert upsert.error.retryable
    assert select.error.kind == RemoteErrorKind.CONNECTIVITY
    assert not client.validate_connection()


def test_select_single_with_columns():
    client = InMemoryUpsertClient()
    client.upsert("t", {"user_id": "u", "key": "k", "value": True, "extra": 1}, ("user_id", "key"))

    found = client.select_single("t", {"user_id": "u", "key": "k"}, columns="value, extra")
    missing = client.select_single("t", {"user_id": "other", "key": "k"})

    assert found.row == {"value": True, "extra": 1}
    assert not missing.found
    assert missing.error is None


def test_upsert_row_uses_row_conflict_target():
    client = InMemoryUpsertClient({"items": [("user_id", "item_id")]})
    row = TransformedRow(
        table="items",
        owner_field="user_id",
        owner_id=USER_ID,
        payload_field="item_data",
        payload={"x": 1},
        last_modified=FIXED_NOW,
        record_id_field="item_id",
        record_id="0",
    )

    results = [client.upsert_row(row), client.upsert_row(row)]

    assert all(result.success for result in results)
    assert len(client.rows("items")) == 1
