from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from .config import Config
from .store import Embed, Row, StoreError, TableStore, no_rows_error

logger = logging.getLogger(__name__)


def _filter_value(value: Any) -> Any:
    # PostgREST vuole i booleani in minuscolo nei filtri
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _api_error_payload(exc: APIError) -> dict[str, Any]:
    return {"message": exc.message, "code": exc.code, "details": exc.details, "hint": exc.hint}


class SupabaseStore(TableStore):
    """
    TableStore sul client Supabase (PostgREST).
    Il client viene creato una volta all'avvio e condiviso in sola lettura tra le richieste.
    """

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: Config) -> "SupabaseStore":
        config.require_supabase()
        logger.info("Client Supabase su %s", config.supabase_url)
        return cls(create_client(config.supabase_url, config.supabase_service_role))

    def _execute(self, query) -> list[Row]:
        try:
            response = query.execute()
        except APIError as exc:
            raise StoreError(_api_error_payload(exc)) from exc
        except httpx.HTTPError as exc:
            raise StoreError({"message": str(exc), "code": None, "details": None, "hint": None}) from exc
        return list(response.data or [])

    @staticmethod
    def _single(rows: list[Row]) -> Row:
        if len(rows) != 1:
            raise no_rows_error(len(rows))
        return rows[0]

    def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        return self._single(self._execute(self._client.table(table).insert(dict(row))))

    def upsert(self, table: str, row: Mapping[str, Any], on_conflict: Sequence[str]) -> Row:
        query = self._client.table(table).upsert(dict(row), on_conflict=",".join(on_conflict))
        return self._single(self._execute(query))

    def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
        embed: Embed | None = None,
    ) -> list[Row]:
        columns = "*"
        if embed is not None:
            columns = f"*, {embed.table}({', '.join(embed.columns)})"

        query = self._client.table(table).select(columns)
        for key, value in (filters or {}).items():
            query = query.is_(key, "null") if value is None else query.eq(key, _filter_value(value))
        if order_by:
            query = query.order(order_by, desc=not ascending)
        if limit is not None:
            query = query.limit(limit)
        return self._execute(query)

    def update(self, table: str, values: Mapping[str, Any], filters: Mapping[str, Any]) -> Row:
        query = self._client.table(table).update(dict(values))
        for key, value in filters.items():
            query = query.eq(key, _filter_value(value))
        return self._single(self._execute(query))
