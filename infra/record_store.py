"""
signalwatch Infrastructure: Record Store Client

REST client for the external record store (PostgREST dialect, as exposed by
Supabase). Owns no state: every call is one round trip, retried with
exponential backoff on rate limits, server errors and network failures.

Filters use PostgREST operator strings::

    {"data->>status": "eq.OPEN", "created_at": "gte.2024-01-01T00:00:00+00:00"}
"""

import logging
import os
import random
import time
from typing import Any, Dict, List, Optional

import requests

from core.exceptions import StoreConfigurationError, StoreError

logger = logging.getLogger(__name__)


class RecordStoreClient:
    """
    Thin PostgREST client.

    Supports:
    - Filtered reads with ordering
    - Inserts and merge-patches
    - Upserts (merge or ignore duplicates on a conflict target)
    - Deletes reporting affected row counts
    """

    def __init__(self, url: str, key: str, timeout: float = 10.0, max_retries: int = 3):
        if not url or not key:
            raise StoreConfigurationError("Record store URL and key are required")
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.timeout = float(timeout)
        self.max_retries = max(1, int(max_retries))
        self._headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        logger.info(f"Initialized RecordStoreClient for {url}")

    @classmethod
    def from_config(cls, raw_config: Optional[Dict[str, Any]]) -> "RecordStoreClient":
        raw_config = raw_config or {}
        url_env = raw_config.get("url_env", "SUPABASE_URL")
        key_env = raw_config.get("key_env", "SUPABASE_KEY")
        url = os.getenv(url_env, "")
        key = os.getenv(key_env, "")
        if not url or not key:
            raise StoreConfigurationError(f"Missing {url_env} or {key_env} in environment")
        return cls(
            url,
            key,
            timeout=float(raw_config.get("timeout_seconds", 10.0)),
            max_retries=int(raw_config.get("max_retries", 3)),
        )

    def select(
        self,
        table: str,
        filters: Optional[Dict[str, str]] = None,
        order: Optional[str] = "created_at.desc",
    ) -> List[Dict[str, Any]]:
        params = {"select": "*"}
        if order:
            params["order"] = order
        params.update(filters or {})
        rows = self._req("GET", table, params=params)
        return rows if isinstance(rows, list) else []

    def insert(self, table: str, row: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows = self._req("POST", table, body=row, prefer="return=representation")
        return rows if isinstance(rows, list) else []

    def patch(self, table: str, filters: Dict[str, str], body: Dict[str, Any]) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("patch requires at least one filter")
        rows = self._req("PATCH", table, params=dict(filters), body=body, prefer="return=representation")
        return rows if isinstance(rows, list) else []

    def upsert(
        self,
        table: str,
        row: Dict[str, Any],
        on_conflict: Optional[str] = None,
        ignore_duplicates: bool = False,
    ) -> None:
        resolution = "ignore-duplicates" if ignore_duplicates else "merge-duplicates"
        params = {"on_conflict": on_conflict} if on_conflict else None
        self._req("POST", table, params=params, body=row, prefer=f"resolution={resolution},return=minimal")

    def delete(self, table: str, filters: Dict[str, str]) -> int:
        """Delete matching rows and return how many were removed."""
        if not filters:
            raise ValueError("delete requires at least one filter")
        rows = self._req("DELETE", table, params=dict(filters), prefer="return=representation")
        return len(rows) if isinstance(rows, list) else 0

    def _req(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
        prefer: Optional[str] = None,
    ) -> Any:
        """
        Make HTTP request to the store with exponential backoff.

        Retries on 429, 5xx and network errors. Other 4xx responses fail
        immediately. Every failure surfaces as StoreError.
        """
        url = f"{self.base_url}/{table}"
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer

        operation = f"{method} {table}"
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                response = requests.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=body,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                if not response.content:
                    return None
                return response.json()

            except requests.exceptions.HTTPError as e:
                status_code = e.response.status_code if e.response is not None else 0
                if 400 <= status_code < 500 and status_code != 429:
                    body_text = e.response.text if e.response is not None else ""
                    logger.error(f"Record store client error on {operation}: {status_code} - {body_text}")
                    raise StoreError(operation, e) from e
                if status_code == 429:
                    logger.warning(f"Record store rate limited (429) on {operation}, attempt {attempt + 1}/{self.max_retries}")
                else:
                    logger.warning(f"Record store server error ({status_code}) on {operation}, attempt {attempt + 1}/{self.max_retries}")
                last_exception = e

            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                logger.warning(f"Network error on {operation}: {e}, attempt {attempt + 1}/{self.max_retries}")
                last_exception = e

            except ValueError as e:
                raise StoreError(f"{operation} returned invalid JSON", e) from e

            except requests.exceptions.RequestException as e:
                logger.error(f"Record store request failed on {operation}: {e}")
                raise StoreError(operation, e) from e

            if attempt < self.max_retries - 1:
                backoff = (2 ** attempt) + random.uniform(0, 1)
                logger.info(f"Retrying {operation} in {backoff:.1f}s...")
                time.sleep(backoff)

        logger.error(f"All {self.max_retries} retries exhausted for {operation}")
        raise StoreError(operation, last_exception)


__all__ = ["RecordStoreClient"]
