from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, time
from typing import Any, Iterator, Mapping, Sequence

from sqlalchemy import Column, Engine, MetaData, Table, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models  # noqa: F401  registra le tabelle nel metadata
from .db import Base, db_session, init_db, make_engine, make_session_factory
from .store import Embed, Row, StoreError, TableStore, no_rows_error

# codici SQLSTATE usati da PostgreSQL, per avere errori della stessa forma dello store remoto
_SQLITE_INTEGRITY_CODES = {
    "UNIQUE constraint failed": "23505",
    "NOT NULL constraint failed": "23502",
    "FOREIGN KEY constraint failed": "23503",
}


def _error(code: str, message: str, details: str | None = None) -> StoreError:
    return StoreError({"code": code, "message": message, "details": details, "hint": None})


def _from_sqlalchemy(exc: SQLAlchemyError) -> StoreError:
    orig = getattr(exc, "orig", None)
    message = str(orig if orig is not None else exc)
    code = getattr(orig, "pgcode", None)
    if code is None and isinstance(exc, IntegrityError):
        code = next((c for prefix, c in _SQLITE_INTEGRITY_CODES.items() if message.startswith(prefix)), "23000")
    return _error(code or "XX000", message)


def _json_value(value: Any) -> Any:
    if isinstance(value, (date, time, datetime)):
        return value.isoformat()
    return value


def _json_row(row: Mapping[str, Any]) -> Row:
    return {k: _json_value(v) for k, v in row.items()}


def _coerce(column: Column, value: Any) -> Any:
    """Converte i valori in arrivo (stringhe da JSON/query string) nel tipo della colonna."""
    if value is None:
        return None
    try:
        py_type = column.type.python_type
    except NotImplementedError:
        return value

    try:
        if isinstance(value, str):
            if py_type is date:
                return date.fromisoformat(value)
            if py_type is time:
                return time.fromisoformat(value)
            if py_type is datetime:
                return datetime.fromisoformat(value)
            if py_type is bool:
                return {"true": True, "false": False}[value.strip().lower()]
            if py_type is int:
                return int(value)
        elif py_type is str and isinstance(value, int) and not isinstance(value, bool):
            return str(value)
    except (ValueError, KeyError):
        raise _error("22P02", f'invalid input syntax for type {py_type.__name__}: "{value}"') from None
    return value


class SqlStore(TableStore):
    """
    TableStore su SQLAlchemy (SQLite o PostgreSQL).
    Stesse semantiche dello store remoto: righe come dict JSON, errori come StoreError.
    """

    def __init__(self, engine: Engine, metadata: MetaData | None = None) -> None:
        self._engine = engine
        self._metadata = metadata if metadata is not None else Base.metadata
        self._session_factory = make_session_factory(engine)

    @classmethod
    def from_url(cls, database_url: str) -> "SqlStore":
        engine = make_engine(database_url)
        init_db(engine)
        return cls(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    # -------------------------
    # Helper
    # -------------------------
    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with db_session(self._session_factory) as s:
                yield s
        except SQLAlchemyError as exc:
            raise _from_sqlalchemy(exc) from exc

    def _table(self, name: str) -> Table:
        table = self._metadata.tables.get(name)
        if table is None:
            raise _error("42P01", f'relation "public.{name}" does not exist')
        return table

    @staticmethod
    def _column(table: Table, name: str) -> Column:
        if name not in table.c:
            raise _error("42703", f"column {table.name}.{name} does not exist")
        return table.c[name]

    def _values(self, table: Table, row: Mapping[str, Any]) -> dict[str, Any]:
        values = {}
        for key, value in row.items():
            if key not in table.c:
                raise _error("PGRST204", f"Could not find the '{key}' column of '{table.name}' in the schema cache")
            values[key] = _coerce(table.c[key], value)
        return values

    def _where(self, table: Table, filters: Mapping[str, Any] | None) -> list:
        clauses = []
        for key, value in (filters or {}).items():
            column = self._column(table, key)
            value = _coerce(column, value)
            clauses.append(column.is_(None) if value is None else column == value)
        return clauses

    @staticmethod
    def _fetch(s: Session, table: Table, clauses: Sequence) -> Row:
        return _json_row(s.execute(select(table).where(*clauses)).mappings().one())

    @staticmethod
    def _pk_clauses(table: Table, pk: Sequence[Any]) -> list:
        return [c == v for c, v in zip(table.primary_key.columns, pk)]

    def _upsert_statement(self, table: Table, values: dict[str, Any], on_conflict: Sequence[str]):
        dialect = self._engine.dialect.name
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert as dialect_insert
        elif dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert as dialect_insert
        else:
            raise _error("0A000", f"upsert non supportato per il dialetto {dialect}")

        stmt = dialect_insert(table).values(**values)
        changes = {k: stmt.excluded[k] for k in values if k not in on_conflict}
        if not changes:
            return stmt.on_conflict_do_nothing(index_elements=list(on_conflict))
        return stmt.on_conflict_do_update(index_elements=list(on_conflict), set_=changes)

    def _embed(self, s: Session, table: Table, rows: list[Row], embed: Embed) -> None:
        target = self._table(embed.table)
        fk = next((fk for fk in table.foreign_keys if fk.column.table is target), None)
        if fk is None:
            raise _error(
                "PGRST200",
                f"Could not find a relationship between '{table.name}' and '{target.name}' in the schema cache",
            )
        local, remote = fk.parent.name, fk.column
        columns = [self._column(target, c) for c in embed.columns]

        keys = {r[local] for r in rows if r[local] is not None}
        related: dict[Any, Row] = {}
        if keys:
            wanted = [remote] + [c for c in columns if c is not remote]
            for r in s.execute(select(*wanted).where(remote.in_(list(keys)))).mappings():
                related[r[remote.name]] = {c.name: _json_value(r[c.name]) for c in columns}

        for r in rows:
            r[target.name] = related.get(r[local])

    # -------------------------
    # TableStore
    # -------------------------
    def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        t = self._table(table)
        values = self._values(t, row)
        with self._session() as s:
            result = s.execute(insert(t).values(**values))
            return self._fetch(s, t, self._pk_clauses(t, result.inserted_primary_key))

    def upsert(self, table: str, row: Mapping[str, Any], on_conflict: Sequence[str]) -> Row:
        t = self._table(table)
        values = self._values(t, row)
        key = {c: values.get(c) for c in on_conflict}
        with self._session() as s:
            s.execute(self._upsert_statement(t, values, on_conflict))
            return self._fetch(s, t, self._where(t, key))

    def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
        embed: Embed | None = None,
    ) -> list[Row]:
        t = self._table(table)
        stmt = select(t).where(*self._where(t, filters))
        if order_by:
            column = self._column(t, order_by)
            stmt = stmt.order_by(column.asc() if ascending else column.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._session() as s:
            rows = [_json_row(r) for r in s.execute(stmt).mappings()]
            if embed is not None:
                self._embed(s, t, rows, embed)
            return rows

    def update(self, table: str, values: Mapping[str, Any], filters: Mapping[str, Any]) -> Row:
        t = self._table(table)
        changes = self._values(t, values)
        where = self._where(t, filters)
        with self._session() as s:
            pks = s.execute(select(*t.primary_key.columns).where(*where)).all()
            if len(pks) != 1:
                raise no_rows_error(len(pks))
            clauses = self._pk_clauses(t, pks[0])
            s.execute(update(t).where(*clauses).values(**changes))
            return self._fetch(s, t, clauses)
