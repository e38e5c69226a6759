"""Tests for the PostgREST upsert client, using requests-mock."""

import pytest
import requests

from kvmigrate.loaders.base import RemoteErrorKind
from kvmigrate.loaders.postgrest_loader import PostgRESTClient, build_session, classify_error

BASE_URL = "https://proj.supabase.co"
ITEMS_URL = f"{BASE_URL}/rest/v1/items"


@pytest.fixture
def client():
    # requests-mock replaces the transport adapter, so urllib3 retries never run
    return PostgRESTClient(BASE_URL + "/", api_key="anon-key", access_token="user-jwt", max_retries=0)


class TestUpsert:

    def test_sends_conflict_target_and_prefer_header(self, client, requests_mock):
        requests_mock.post(ITEMS_URL, status_code=201)
        row = {"user_id": "u1", "item_id": "0", "item_data": {"x": 1}}

        result = client.upsert("items", row, ("user_id", "item_id"))

        assert result.success
        request = requests_mock.last_request
        assert request.qs == {"on_conflict": ["user_id,item_id"]}
        assert request.headers["Prefer"] == "resolution=merge-duplicates,return=minimal"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer user-jwt"
        assert request.json() == row

    def test_unique_violation(self, client, requests_mock):
        requests_mock.post(ITEMS_URL, status_code=409, json={
            "code": "23505",
            "message": "duplicate key value violates unique constraint",
        })

        result = client.upsert("items", {"user_id": "u1"}, ("user_id",))

        assert not result.success
        assert result.error.kind == RemoteErrorKind.CONSTRAINT_VIOLATION
        assert result.error.status_code == 409
        assert str(result.error) == "duplicate key value violates unique constraint (code 23505)"

    def test_expired_token(self, client, requests_mock):
        requests_mock.post(ITEMS_URL, status_code=401, json={"code": "PGRST301", "message": "JWT expired"})

        result = client.upsert("items", {"user_id": "u1"}, ("user_id",))

        assert result.error.kind == RemoteErrorKind.PERMISSION_DENIED

    def test_missing_table(self, client, requests_mock):
        requests_mock.post(ITEMS_URL, status_code=404, json={"code": "42P01", "message": "relation does not exist"})

        result = client.upsert("items", {"user_id": "u1"}, ("user_id",))

        assert result.error.kind == RemoteErrorKind.NOT_FOUND

    def test_server_error_with_text_body(self, client, requests_mock):
        requests_mock.post(ITEMS_URL, status_code=503, text="upstream unavailable")

        result = client.upsert("items", {"user_id": "u1"}, ("user_id",))

        assert result.error.kind == RemoteErrorKind.CONNECTIVITY
        assert result.error.retryable
        assert result.error.message == "upstream unavailable"

    @pytest.mark.parametrize("exc, kind", [
        (requests.exceptions.ConnectTimeout, RemoteErrorKind.TIMEOUT),
        (requests.exceptions.ReadTimeout, RemoteErrorKind.TIMEOUT),
        (requests.exceptions.ConnectionError, RemoteErrorKind.CONNECTIVITY),
    ])
    def test_transport_failures(self, client, requests_mock, exc, kind):
        requests_mock.post(ITEMS_URL, exc=exc)

        result = client.upsert("items", {"user_id": "u1"}, ("user_id",))

        assert not result.success
        assert result.error.kind == kind


class TestSelectSingle:

    def test_found(self, client, requests_mock):
        requests_mock.get(f"{BASE_URL}/rest/v1/user_settings", json={"value": True})

        result = client.select_single(
            "user_settings",
            {"user_id": "u1", "key": "migration_localstorage_done"},
            columns="value,last_modified",
        )

        assert result.found
        assert result.row == {"value": True}
        request = requests_mock.last_request
        assert request.qs["select"] == ["value,last_modified"]
        assert request.qs["user_id"] == ["eq.u1"]
        assert request.qs["key"] == ["eq.migration_localstorage_done"]
        assert request.headers["Accept"] == "application/vnd.pgrst.object+json"

    def test_no_rows_is_not_an_error(self, client, requests_mock):
        requests_mock.get(f"{BASE_URL}/rest/v1/user_settings", status_code=406, json={
            "code": "PGRST116",
            "message": "JSON object requested, multiple (or no) rows returned",
        })

        result = client.select_single("user_settings", {"user_id": "u1"})

        assert not result.found
        assert result.error is None

    def test_permission_error(self, client, requests_mock):
        requests_mock.get(f"{BASE_URL}/rest/v1/user_settings", status_code=403, json={
            "code": "42501",
            "message": "permission denied for table user_settings",
        })

        result = client.select_single("user_settings", {"user_id": "u1"})

        assert result.error.kind == RemoteErrorKind.PERMISSION_DENIED


class TestValidateConnection:

    def test_reachable(self, client, requests_mock):
        requests_mock.get(f"{BASE_URL}/rest/v1/", status_code=200, json={})
        assert client.validate_connection()

    def test_auth_failure_still_reachable(self, client, requests_mock):
        requests_mock.get(f"{BASE_URL}/rest/v1/", status_code=401)
        assert client.validate_connection()

    def test_server_error(self, client, requests_mock):
        requests_mock.get(f"{BASE_URL}/rest/v1/", status_code=502)
        assert not client.validate_connection()

    def test_connection_refused(self, client, requests_mock):
        requests_mock.get(f"{BASE_URL}/rest/v1/", exc=requests.exceptions.ConnectionError)
        assert not client.validate_connection()


@pytest.mark.parametrize("status, code, kind", [
    (409, "23505", RemoteErrorKind.CONSTRAINT_VIOLATION),
    (400, "23502", RemoteErrorKind.CONSTRAINT_VIOLATION),
    (400, "42P10", RemoteErrorKind.CONSTRAINT_VIOLATION),
    (403, "42501", RemoteErrorKind.PERMISSION_DENIED),
    (404, "PGRST205", RemoteErrorKind.NOT_FOUND),
    (500, "57014", RemoteErrorKind.TIMEOUT),
    (409, None, RemoteErrorKind.CONSTRAINT_VIOLATION),
    (401, None, RemoteErrorKind.PERMISSION_DENIED),
    (504, None, RemoteErrorKind.TIMEOUT),
    (429, None, RemoteErrorKind.CONNECTIVITY),
    (500, None, RemoteErrorKind.CONNECTIVITY),
    (418, None, RemoteErrorKind.UNKNOWN),
    (None, None, RemoteErrorKind.UNKNOWN),
])
def test_classify_error(status, code, kind):
    assert classify_error(status, code) == kind


def test_session_falls_back_to_api_key_for_bearer():
    session = build_session(api_key="anon-key")

    assert session.headers["apikey"] == "anon-key"
    assert session.headers["Authorization"] == "Bearer anon-key"
    assert session.get_adapter("https://example.com").max_retries.total == 3
