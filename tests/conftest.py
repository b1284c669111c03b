from datetime import date
from typing import Any, Generator, Mapping, Sequence

import pytest
from fastapi.testclient import TestClient

from agenda_clinicas.api_main import create_app
from agenda_clinicas.services import Agenda
from agenda_clinicas.sql_store import SqlStore
from agenda_clinicas.store import Embed, Row, TableStore

HOY = date(2026, 1, 14)


@pytest.fixture()
def store() -> SqlStore:
    # DB in memoria nuovo per ogni test
    return SqlStore.from_url("sqlite://")


@pytest.fixture()
def agenda(store: SqlStore) -> Agenda:
    return Agenda(store, hoy=lambda: HOY)


@pytest.fixture()
def client(agenda: Agenda) -> Generator[TestClient, None, None]:
    with TestClient(create_app(agenda)) as c:
        yield c


@pytest.fixture()
def clinica(agenda: Agenda) -> dict:
    return agenda.crear_clinica("Veterinaria Norte", "+5491100000000")


class DelegatingStore(TableStore):
    """Inoltra tutto a uno store reale; le sottoclassi alterano singoli passi."""

    def __init__(self, inner: TableStore) -> None:
        self.inner = inner

    def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        return self.inner.insert(table, row)

    def upsert(self, table: str, row: Mapping[str, Any], on_conflict: Sequence[str]) -> Row:
        return self.inner.upsert(table, row, on_conflict)

    def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
        embed: Embed | None = None,
    ) -> list[Row]:
        return self.inner.select(table, filters, order_by, ascending, limit, embed)

    def update(self, table: str, values: Mapping[str, Any], filters: Mapping[str, Any]) -> Row:
        return self.inner.update(table, values, filters)
