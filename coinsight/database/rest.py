"""
PostgREST-compatible HTTP store (e.g. a Supabase project's REST endpoint).
"""

import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional, Union

import requests

from .store import Filters, RemoteStore, Row, StoreError, parse_order

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 1.0
MAX_RETRY_AFTER = 60.0


def retry_after_seconds(value: Optional[str]) -> float:
    """
    Seconds to wait from a Retry-After header.

    Accepts delta-seconds or an HTTP date; anything else falls back to
    DEFAULT_RETRY_AFTER. Waits are capped at MAX_RETRY_AFTER.
    """
    if not value:
        return DEFAULT_RETRY_AFTER
    try:
        return min(MAX_RETRY_AFTER, max(0.0, float(value)))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        retry_at = None
    if retry_at is None:
        logger.warning(f"Unparseable Retry-After header: {value!r}")
        return DEFAULT_RETRY_AFTER
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    wait = (retry_at - datetime.now(timezone.utc)).total_seconds()
    return min(MAX_RETRY_AFTER, max(0.0, wait))


class RestStore(RemoteStore):
    """RemoteStore backed by a PostgREST API."""

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 10):
        """
        Initialize REST store.

        Args:
            base_url: Project URL; tables live under /rest/v1/<table>
            api_key: API key sent as apikey and bearer token
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Row]:
        params = self._filter_params(filters or {})
        params["select"] = "*"
        if order:
            column, descending = parse_order(order)
            params["order"] = f"{column}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(int(limit))
        return self._request("GET", table, params=params)

    def insert(self, table: str, records: Union[Row, list[Row]]) -> list[Row]:
        if isinstance(records, dict):
            records = [records]
        if not records:
            return []
        return self._request("POST", table, json=records)

    def update(self, table: str, filters: Filters, patch: Row) -> list[Row]:
        if not patch:
            raise StoreError("Update patch is empty")
        return self._request(
            "PATCH", table, params=self._filter_params(filters), json=patch
        )

    def delete(self, table: str, filters: Filters) -> int:
        if not filters:
            # PostgREST refuses unfiltered deletes
            raise StoreError(f"Refusing to delete from {table} without filters")
        rows = self._request("DELETE", table, params=self._filter_params(filters))
        return len(rows)

    def _filter_params(self, filters: Filters) -> dict[str, str]:
        """Translate equality filters to PostgREST operators."""
        params = {}
        for column, value in filters.items():
            if value is None:
                params[column] = "is.null"
            elif isinstance(value, bool):
                params[column] = f"eq.{'true' if value else 'false'}"
            else:
                params[column] = f"eq.{value}"
        return params

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[dict[str, str]] = None,
        json: Any = None,
    ) -> list[Row]:
        """Send request with rate limit handling."""
        url = f"{self.base_url}/rest/v1/{table}"

        try:
            response = self._send(method, url, params, json)

            # Handle rate limiting
            if response.status_code == 429:
                time.sleep(retry_after_seconds(response.headers.get("Retry-After")))
                response = self._send(method, url, params, json)
        except requests.exceptions.RequestException as e:
            raise StoreError(f"{method} {table} failed: {e}") from e

        if not response.ok:
            raise StoreError(
                f"{method} {table} failed: HTTP {response.status_code}: {response.text}"
            )

        if not response.content:
            return []
        try:
            body = response.json()
        except ValueError as e:
            raise StoreError(f"{method} {table} returned invalid JSON") from e
        return body if isinstance(body, list) else [body]

    def _send(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, str]],
        json: Any,
    ) -> requests.Response:
        return requests.request(
            method,
            url,
            params=params,
            json=json,
            headers=self._headers(),
            timeout=self.timeout,
        )
