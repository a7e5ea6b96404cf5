"""
HTTP client for a Supabase (PostgREST) record service.

Maps the record store protocol onto the REST endpoints under
``{api_url}/rest/v1/{collection}``. Every call is made once: there is no
retry policy, and any transport or HTTP failure surfaces as StoreError.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .errors import StoreError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def _literal(value: Any) -> str:
    """Render a filter value for a PostgREST query string."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _eq_params(eq: Optional[dict[str, Any]]) -> dict[str, str]:
    params: dict[str, str] = {}
    for column, value in (eq or {}).items():
        params[column] = "is.null" if value is None else f"eq.{_literal(value)}"
    return params


class RemoteRecordStore:
    """Record store backed by a Supabase project's REST API."""

    def __init__(self, api_url: str, api_key: str, *, timeout: float = DEFAULT_TIMEOUT):
        self._api_url = api_url.rstrip("/")

        # Refuse non-HTTPS for remote APIs (the key would be sent in cleartext)
        if not self._api_url.startswith("https://"):
            from urllib.parse import urlparse
            host = urlparse(self._api_url).hostname or ""
            if host not in ("localhost", "127.0.0.1", "::1"):
                raise ValueError(
                    f"Record store URL must use HTTPS (got {self._api_url}). "
                    "Use HTTPS to protect API credentials, or use localhost for local development."
                )

        headers: dict[str, str] = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._client = httpx.Client(
            base_url=f"{self._api_url}/rest/v1",
            headers=headers,
            timeout=timeout,
        )

    def _request(
        self,
        operation: str,
        method: str,
        collection: str,
        *,
        params: Optional[dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
        expect_body: bool = True,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        try:
            resp = self._client.request(
                method, f"/{collection}", params=params, json=json, headers=headers,
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StoreError(
                operation, collection,
                f"{e.response.status_code} {e.response.text}",
            ) from e
        except httpx.HTTPError as e:
            raise StoreError(operation, collection, str(e)) from e

        if not expect_body:
            return None
        try:
            data = resp.json()
        except ValueError as e:
            raise StoreError(operation, collection, f"malformed response: {e}") from e
        if not isinstance(data, list):
            raise StoreError(operation, collection, f"expected a list of rows, got {type(data).__name__}")
        return data

    def select(
        self,
        collection: str,
        *,
        eq: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """GET /{collection}?select=*&order=...&limit=..."""
        params = {"select": "*", **_eq_params(eq)}
        if order_by:
            params["order"] = f"{order_by}.{'asc' if ascending else 'desc'}"
        if limit is not None:
            params["limit"] = str(limit)
        return self._request("select", "GET", collection, params=params)

    def insert(self, collection: str, rows: list[dict]) -> list[dict]:
        """POST /{collection} with a JSON array; returns the created rows."""
        if not rows:
            return []
        body = [{k: v for k, v in r.items() if k not in ("id", "created_at")} for r in rows]
        return self._request(
            "insert", "POST", collection,
            json=body, prefer="return=representation",
        )

    def upsert(self, collection: str, row: dict, *, on_conflict: str = "key") -> dict:
        """POST /{collection}?on_conflict=key merging duplicates."""
        data = self._request(
            "upsert", "POST", collection,
            params={"on_conflict": on_conflict},
            json=[row],
            prefer="resolution=merge-duplicates,return=representation",
        )
        if not data:
            raise StoreError("upsert", collection, "no row returned")
        return data[0]

    def update(self, collection: str, id: Any, values: dict) -> None:
        """PATCH /{collection}?id=eq.{id}"""
        self._request(
            "update", "PATCH", collection,
            params={"id": f"eq.{_literal(id)}"},
            json=values, expect_body=False,
        )

    def delete(self, collection: str, ids: list) -> int:
        """DELETE /{collection}?id=in.(...)"""
        if not ids:
            return 0
        id_list = ",".join(_literal(i) for i in ids)
        data = self._request(
            "delete", "DELETE", collection,
            params={"id": f"in.({id_list})"},
            prefer="return=representation",
        )
        return len(data)

    def delete_all(self, collection: str) -> int:
        """DELETE /{collection}?id=not.is.null (PostgREST refuses unfiltered deletes)."""
        data = self._request(
            "delete_all", "DELETE", collection,
            params={"id": "not.is.null"},
            prefer="return=representation",
        )
        return len(data)

    def delete_where(self, collection: str, eq: dict[str, Any]) -> int:
        if not eq:
            raise StoreError("delete_where", collection, "refusing to delete without a filter")
        data = self._request(
            "delete_where", "DELETE", collection,
            params=_eq_params(eq),
            prefer="return=representation",
        )
        return len(data)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()
