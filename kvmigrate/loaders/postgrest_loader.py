"""Upsert client for PostgREST / Supabase REST endpoints."""

import logging
from typing import Any, Dict, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import (
    BaseUpsertClient,
    RemoteError,
    RemoteErrorKind,
    SelectResult,
    UpsertResult,
)

logger = logging.getLogger(__name__)

# PostgREST error codes
NO_ROWS_CODE = "PGRST116"
JWT_ERROR_CODES = ("PGRST300", "PGRST301", "PGRST302")
MISSING_TABLE_CODES = ("42P01", "PGRST205")

# Postgres SQLSTATE values
INSUFFICIENT_PRIVILEGE = "42501"
NO_MATCHING_CONSTRAINT = "42P10"
QUERY_CANCELED = "57014"


def build_session(
    api_key: Optional[str] = None,
    access_token: Optional[str] = None,
    max_retries: int = 3,
    backoff_factor: float = 0.5
) -> requests.Session:
    """Create a requests session with Supabase auth headers and retry logic."""
    session = requests.Session()

    # Upserts with merge-duplicates are idempotent, so POST may be retried too.
    retries = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=frozenset(["GET", "POST"]),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retries)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    if api_key:
        session.headers["apikey"] = api_key
    token = access_token or api_key
    if token:
        session.headers["Authorization"] = f"Bearer {token}"

    session.headers["Content-Type"] = "application/json"
    return session


def classify_error(status_code: Optional[int], code: Optional[str]) -> RemoteErrorKind:
    """Map an HTTP status and SQLSTATE/PostgREST code to a RemoteErrorKind."""
    if code:
        if code.startswith("23") or code == NO_MATCHING_CONSTRAINT:
            return RemoteErrorKind.CONSTRAINT_VIOLATION
        if code == INSUFFICIENT_PRIVILEGE or code in JWT_ERROR_CODES:
            return RemoteErrorKind.PERMISSION_DENIED
        if code in MISSING_TABLE_CODES:
            return RemoteErrorKind.NOT_FOUND
        if code == QUERY_CANCELED:
            return RemoteErrorKind.TIMEOUT

    if status_code is None:
        return RemoteErrorKind.UNKNOWN
    if status_code == 409:
        return RemoteErrorKind.CONSTRAINT_VIOLATION
    if status_code in (401, 403):
        return RemoteErrorKind.PERMISSION_DENIED
    if status_code == 404:
        return RemoteErrorKind.NOT_FOUND
    if status_code in (408, 504):
        return RemoteErrorKind.TIMEOUT
    if status_code == 429 or status_code >= 500:
        return RemoteErrorKind.CONNECTIVITY
    return RemoteErrorKind.UNKNOWN


def error_from_response(response: requests.Response) -> RemoteError:
    """Build a RemoteError from a failed PostgREST response."""
    code = None
    details = None
    message = response.reason or f"HTTP {response.status_code}"

    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        code = body.get("code")
        message = (
            body.get("message") or
            body.get("msg") or
            body.get("error_description") or
            body.get("error") or
            message
        )
        details = body
    elif response.text:
        message = response.text[:200]

    return RemoteError(
        kind=classify_error(response.status_code, str(code) if code else None),
        message=message,
        code=str(code) if code else None,
        status_code=response.status_code,
        details=details,
    )


def error_from_exception(exc: requests.exceptions.RequestException) -> RemoteError:
    """Build a RemoteError from a transport-level exception."""
    # ConnectTimeout is both a Timeout and a ConnectionError; report it as a timeout.
    if isinstance(exc, requests.exceptions.Timeout):
        kind = RemoteErrorKind.TIMEOUT
    elif isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.RetryError)):
        kind = RemoteErrorKind.CONNECTIVITY
    else:
        kind = RemoteErrorKind.UNKNOWN
    return RemoteError(kind=kind, message=str(exc))


class PostgRESTClient(BaseUpsertClient):
    """
    Upsert client for a PostgREST API (as exposed by Supabase).

    Upserts are sent as ``POST /rest/v1/<table>?on_conflict=<cols>`` with
    ``Prefer: resolution=merge-duplicates`` so the database resolves
    conflicts against the named unique constraint.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the PostgREST client.

        Args:
            base_url: Project URL, e.g. ``https://<ref>.supabase.co``
            api_key: Project API key, sent as ``apikey``
            access_token: User JWT; falls back to the API key
            timeout: Per-request timeout in seconds
            max_retries: Retries for 429/5xx responses
            backoff_factor: Exponential backoff factor between retries
            session: Custom requests session
        """
        self.base_url = base_url.rstrip("/")
        self.rest_url = f"{self.base_url}/rest/v1"
        self.timeout = timeout
        self._session = session or build_session(api_key, access_token, max_retries, backoff_factor)

    def upsert(
        self,
        table: str,
        row: Dict[str, Any],
        on_conflict: Sequence[str]
    ) -> UpsertResult:
        """Upsert one row through PostgREST."""
        url = f"{self.rest_url}/{table}"
        params = {"on_conflict": ",".join(on_conflict)}
        headers = {"Prefer": "resolution=merge-duplicates,return=minimal"}

        try:
            response = self._session.post(
                url, params=params, json=row, headers=headers, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            error = error_from_exception(e)
            logger.warning(f"Upsert into {table} failed ({error.kind.value}): {e}")
            return UpsertResult(table=table, success=False, row=row, error=error)

        if response.ok:
            return UpsertResult(table=table, success=True, row=row)

        error = error_from_response(response)
        logger.warning(f"Upsert into {table} rejected ({error.kind.value}): {error}")
        return UpsertResult(table=table, success=False, row=row, error=error)

    def select_single(
        self,
        table: str,
        filters: Dict[str, Any],
        columns: str = "*"
    ) -> SelectResult:
        """Read one row through PostgREST's single-object representation."""
        url = f"{self.rest_url}/{table}"
        params = {"select": columns}
        for column, value in filters.items():
            params[column] = f"eq.{value}"
        headers = {"Accept": "application/vnd.pgrst.object+json"}

        try:
            response = self._session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            return SelectResult(table=table, error=error_from_exception(e))

        if response.ok:
            body = response.json() if response.text else None
            return SelectResult(table=table, row=body if isinstance(body, dict) else None)

        error = error_from_response(response)
        if error.code == NO_ROWS_CODE:
            return SelectResult(table=table)

        return SelectResult(table=table, error=error)

    def validate_connection(self) -> bool:
        """Validate connection to the REST endpoint."""
        try:
            response = self._session.get(f"{self.rest_url}/", timeout=self.timeout)
            return response.status_code < 500
        except requests.exceptions.RequestException as e:
            logger.error(f"Remote store connection validation failed: {e}")
            return False
