"""HTTP client for the hosted backend.

The backend exposes its tables through a PostgREST-style REST API under
``/rest/v1`` and password sign-in under ``/auth/v1``. Every failure is
raised as ``BackendError`` so callers can fall back to the local cache.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

Filters = Dict[str, Any]


class BackendError(Exception):
    """Query or HTTP error returned by the backend."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class BackendUnavailable(BackendError):
    """Backend is not configured or cannot be reached."""

    pass


class BackendClient:
    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = (url or "").rstrip("/")
        self.key = key or ""
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.url)

    def _headers(self, access_token: str | None = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.key:
            headers["apikey"] = self.key
            headers["Authorization"] = f"Bearer {self.key}"
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.url,
            timeout=self.timeout,
            transport=self._transport,
        )

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        access_token: str | None = None,
    ) -> Any:
        if not self.configured:
            raise BackendUnavailable("Backend URL is not configured")

        all_headers = self._headers(access_token)
        if headers:
            all_headers.update(headers)

        try:
            with self._get_client() as client:
                response = client.request(method, path, params=params, json=json, headers=all_headers)
        except httpx.HTTPError as e:
            raise BackendUnavailable(f"Backend request failed: {e}") from e

        return _handle_response(response)

    # ---------------- tables ----------------

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order: Optional[Tuple[str, bool]] = None,
        single: bool = False,
    ) -> Any:
        """
        ``filters`` is ``{column: value}`` (equality). ``order`` is
        ``(column, descending)``. With ``single=True`` exactly one row is
        expected and returned as a dict.
        """
        params = {"select": "*"}
        params.update(_eq_params(filters))
        if order:
            column, desc = order
            params["order"] = f"{column}.{'desc' if desc else 'asc'}"

        headers = {"Accept": "application/vnd.pgrst.object+json"} if single else None
        return self._request("GET", f"/rest/v1/{table}", params=params, headers=headers)

    def insert(self, table: str, rows: Dict[str, Any] | List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        data = self._request(
            "POST",
            f"/rest/v1/{table}",
            json=rows,
            headers={"Prefer": "return=representation"},
        )
        return _as_rows(data)

    def upsert(
        self,
        table: str,
        rows: Dict[str, Any] | List[Dict[str, Any]],
        on_conflict: str | None = None,
    ) -> List[Dict[str, Any]]:
        params = {"on_conflict": on_conflict} if on_conflict else None
        data = self._request(
            "POST",
            f"/rest/v1/{table}",
            params=params,
            json=rows,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return _as_rows(data)

    def update(self, table: str, values: Dict[str, Any], filters: Filters) -> List[Dict[str, Any]]:
        data = self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=_eq_params(filters),
            json=values,
            headers={"Prefer": "return=representation"},
        )
        return _as_rows(data)

    def delete(self, table: str, filters: Filters) -> List[Dict[str, Any]]:
        data = self._request(
            "DELETE",
            f"/rest/v1/{table}",
            params=_eq_params(filters),
            headers={"Prefer": "return=representation"},
        )
        return _as_rows(data)

    # ---------------- auth ----------------

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """Password sign-in. Returns the session payload with ``access_token``."""
        return self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )

    def get_user(self, access_token: str) -> Dict[str, Any]:
        return self._request("GET", "/auth/v1/user", access_token=access_token)


def _eq_params(filters: Optional[Filters]) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for column, value in (filters or {}).items():
        if isinstance(value, bool):
            value = str(value).lower()
        params[column] = f"eq.{value}"
    return params


def _as_rows(data: Any) -> List[Dict[str, Any]]:
    if data is None:
        return []
    if isinstance(data, list):
        return data
    return [data]


def _handle_response(response: httpx.Response) -> Any:
    if response.status_code < 400:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError("Backend returned invalid JSON", response.status_code) from e

    try:
        error_data = response.json()
    except ValueError:
        error_data = None

    message = "Backend error"
    if isinstance(error_data, dict):
        message = (
            error_data.get("message")
            or error_data.get("error_description")
            or error_data.get("msg")
            or error_data.get("error")
            or message
        )
    raise BackendError(str(message), response.status_code, error_data)


def create_backend(settings) -> BackendClient:
    if not settings.backend_url:
        logger.warning("BACKEND_URL is not set; running on the local fallback cache only")
    return BackendClient(settings.backend_url, settings.backend_key, settings.backend_timeout)
