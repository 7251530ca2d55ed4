"""
Data Store Client - thin pass-through over the Supabase query builder.

Only per-table filters (eq, in, limit, order) are exposed; there are no joins
and no transactions. Batch writes are upserts keyed on ``id`` so concurrent
sessions resolve as last-write-wins.
"""

from __future__ import annotations

from typing import Any

import httpx
from supabase import Client, create_client
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from mailfortress.config import DB_RETRY_MAX, DB_RETRY_MAX_DELAY, supabase_key, supabase_url
from mailfortress.observability.logging import get_logger
from mailfortress.observability.telemetry import counter

logger = get_logger(__name__)

_retry_transient = retry(
    stop=stop_after_attempt(DB_RETRY_MAX),
    wait=wait_exponential(multiplier=0.25, min=0.25, max=DB_RETRY_MAX_DELAY),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)


class DataStoreError(RuntimeError):
    """A store call failed after retries."""


class DataStoreConfigurationError(DataStoreError):
    """SUPABASE_URL or key missing."""


class DataStore:
    """Select/insert/update/upsert/delete over the ``emails`` and ``prompts`` tables."""

    def __init__(self, client: Client | None = None, url: str | None = None, key: str | None = None) -> None:
        self._client = client
        self._url = url
        self._key = key

    @property
    def configured(self) -> bool:
        return self._client is not None or bool((self._url or supabase_url()) and (self._key or supabase_key()))

    @property
    def client(self) -> Client:
        """Lazily create the Supabase client so the app can start unconfigured."""
        if self._client is None:
            url = self._url or supabase_url()
            key = self._key or supabase_key()
            if not url or not key:
                raise DataStoreConfigurationError(
                    "Supabase is not configured: set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY "
                    "(or SUPABASE_KEY / SUPABASE_ANON_KEY)"
                )
            self._client = create_client(url, key)
            logger.info("Connected Supabase client for %s", url)
        return self._client

    def select(
        self,
        table: str,
        eq: dict[str, Any] | None = None,
        in_: dict[str, list[Any]] | None = None,
        not_true: list[str] | None = None,
        limit: int | None = None,
        order: tuple[str, bool] | None = None,
    ) -> list[dict[str, Any]]:
        """Return rows matching every filter. ``order`` is (column, descending).

        ``not_true`` columns match both false and NULL (PostgREST ``not.is.true``).
        """

        def run() -> Any:
            query = self.client.table(table).select("*")
            for column, value in (eq or {}).items():
                query = query.eq(column, value)
            for column, values in (in_ or {}).items():
                query = query.in_(column, list(values))
            for column in not_true or []:
                query = query.not_.is_(column, "true")
            if order is not None:
                query = query.order(order[0], desc=order[1])
            if limit is not None:
                query = query.limit(limit)
            return query.execute()

        return self._execute("select", table, run)

    def insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not rows:
            return []
        return self._execute("insert", table, lambda: self.client.table(table).insert(rows).execute())

    def update(self, table: str, values: dict[str, Any], eq: dict[str, Any]) -> list[dict[str, Any]]:
        """Update matching rows and return them; an empty list means nothing matched."""
        if not eq:
            raise ValueError("update requires at least one eq filter")

        def run() -> Any:
            query = self.client.table(table).update(values)
            for column, value in eq.items():
                query = query.eq(column, value)
            return query.execute()

        return self._execute("update", table, run)

    def upsert(self, table: str, rows: list[dict[str, Any]], on_conflict: str = "id") -> list[dict[str, Any]]:
        if not rows:
            return []
        return self._execute(
            "upsert",
            table,
            lambda: self.client.table(table).upsert(rows, on_conflict=on_conflict).execute(),
        )

    def delete_all(self, table: str) -> list[dict[str, Any]]:
        """Delete every row. PostgREST refuses an unfiltered DELETE, so match on a non-null id."""
        return self._execute(
            "delete",
            table,
            lambda: self.client.table(table).delete().not_.is_("id", "null").execute(),
        )

    def _execute(self, operation: str, table: str, run: Any) -> list[dict[str, Any]]:
        try:
            response = _retry_transient(run)()
        except DataStoreConfigurationError:
            raise
        except Exception as e:
            counter(f"store.{operation}.error")
            logger.error("Store %s on %s failed: %s", operation, table, e)
            raise DataStoreError(f"{operation} on {table} failed: {e}") from e

        counter(f"store.{operation}")
        return list(response.data or [])
