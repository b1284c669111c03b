from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

Row = dict[str, Any]


class StoreError(Exception):
    """
    Errore restituito dallo store esterno.
    `payload` è l'errore così come l'ha riportato lo store (nessuna trasformazione).
    """

    def __init__(self, payload: Any) -> None:
        self.payload = payload
        message = payload.get("message") if isinstance(payload, dict) else payload
        super().__init__(str(message))


def no_rows_error(count: int) -> StoreError:
    # stessa forma dell'errore PostgREST quando .single() non trova esattamente una riga
    return StoreError(
        {
            "code": "PGRST116",
            "message": "JSON object requested, multiple (or no) rows returned",
            "details": f"The result contains {count} rows",
            "hint": None,
        }
    )


@dataclass(frozen=True)
class Embed:
    """Risorsa collegata da incorporare in ogni riga, es. Embed("clientes", ("nombre", "telefono"))."""

    table: str
    columns: tuple[str, ...]


class TableStore(ABC):
    """
    Contratto minimo verso lo store relazionale esterno.
    Ogni metodo restituisce righe come dict serializzabili, oppure solleva StoreError.
    """

    @abstractmethod
    def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        """Inserisce una riga e restituisce la riga creata."""

    @abstractmethod
    def upsert(self, table: str, row: Mapping[str, Any], on_conflict: Sequence[str]) -> Row:
        """Inserisce o aggiorna sulla chiave `on_conflict`; restituisce la riga risultante."""

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
        embed: Embed | None = None,
    ) -> list[Row]:
        """Select con filtri di uguaglianza, ordinamento e limite."""

    @abstractmethod
    def update(self, table: str, values: Mapping[str, Any], filters: Mapping[str, Any]) -> Row:
        """Aggiorna esattamente una riga; zero o più righe corrispondenti sono un errore."""

    def select_one(self, table: str, filters: Mapping[str, Any]) -> Row | None:
        rows = self.select(table, filters=filters, limit=1)
        return rows[0] if rows else None
