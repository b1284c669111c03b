import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Mapping, Sequence

import pytest
from fastapi.testclient import TestClient

from agenda_clinicas.api_main import create_app
from agenda_clinicas.services import Agenda, HorarioNoDisponible
from agenda_clinicas.sql_store import SqlStore
from agenda_clinicas.store import Row, StoreError, TableStore

from .conftest import DelegatingStore


class SlotMarkingFails(DelegatingStore):
    def upsert(self, table: str, row: Mapping[str, Any], on_conflict: Sequence[str]) -> Row:
        if table == "disponibilidad":
            raise StoreError({"code": "57014", "message": "canceling statement due to statement timeout"})
        return super().upsert(table, row, on_conflict)


class LookupFails(DelegatingStore):
    def select(self, table: str, *args, **kwargs) -> list[Row]:
        if table == "disponibilidad":
            raise StoreError({"code": "08006", "message": "connection failure"})
        return super().select(table, *args, **kwargs)


class BothCheckBeforeWrite(DelegatingStore):
    """Fa leggere la disponibilità a entrambe le prenotazioni prima che una delle due scriva."""

    def __init__(self, inner: TableStore, parties: int) -> None:
        super().__init__(inner)
        self.barrier = threading.Barrier(parties, timeout=10)

    def select_one(self, table: str, filters: Mapping[str, Any]) -> Row | None:
        row = super().select_one(table, filters)
        self.barrier.wait()
        return row


def test_crear_turno_marca_el_horario(agenda: Agenda, clinica: dict):
    esito = agenda.crear_turno(clinica["id"], "Ana", "1155550001", None, "2026-01-20", "09:00")
    assert esito.horario_marcado is True
    assert esito.degradado is False
    assert esito.error_marcado is None
    assert esito.turno["cliente_id"]


def test_crear_turno_degradado_si_falla_el_marcado(store: SqlStore, clinica: dict):
    agenda = Agenda(SlotMarkingFails(store))

    esito = agenda.crear_turno(clinica["id"], "Ana", "1155550001", None, "2026-01-20", "09:00")

    assert esito.degradado is True
    assert esito.error_marcado["code"] == "57014"
    assert store.select("turnos") == [esito.turno]
    # lo slot resta senza riga: una seconda prenotazione passa
    assert store.select("disponibilidad") == []


def test_api_expone_el_resultado_degradado(store: SqlStore, clinica: dict):
    with TestClient(create_app(SlotMarkingFails(store))) as client:
        response = client.post(
            "/turnos/crear",
            json={
                "clinica_id": clinica["id"],
                "nombre": "Ana",
                "telefono": "1155550001",
                "email": None,
                "fecha": "2026-01-20",
                "hora": "09:00",
            },
        )
    assert response.status_code == 200, response.text
    assert response.headers["X-Horario-Marcado"] == "false"
    assert response.json()["id"]


def test_error_al_verificar_equivale_a_libre(store: SqlStore, clinica: dict):
    store.upsert(
        "disponibilidad",
        {"clinica_id": clinica["id"], "fecha": "2026-01-20", "hora": "09:00", "disponible": False},
        on_conflict=("clinica_id", "fecha", "hora"),
    )
    agenda = Agenda(LookupFails(store))

    esito = agenda.crear_turno(clinica["id"], "Ana", "1155550001", None, "2026-01-20", "09:00")
    assert esito.turno["id"]


def test_horario_ocupado(agenda: Agenda, clinica: dict, store: SqlStore):
    agenda.crear_turno(clinica["id"], "Ana", "1155550001", None, "2026-01-20", "09:00")

    with pytest.raises(HorarioNoDisponible) as exc_info:
        agenda.crear_turno(clinica["id"], "Luis", "1155550002", None, "2026-01-20", "09:00")

    assert str(exc_info.value) == "Horario no disponible"
    assert len(store.select("turnos")) == 1
    # il cliente viene comunque registrato prima della verifica
    assert store.select_one("clientes", {"telefono": "1155550002"}) is not None


def test_reservas_concurrentes_mismo_horario(tmp_path):
    # nessuna transazione copre verifica e scrittura: entrambe riescono
    store = SqlStore.from_url(f"sqlite:///{tmp_path / 'race.sqlite'}")
    agenda = Agenda(BothCheckBeforeWrite(store, parties=2))
    clinica = agenda.crear_clinica("Veterinaria Norte", "+5491100000000")

    def reservar(telefono: str):
        return agenda.crear_turno(clinica["id"], "Cliente", telefono, None, "2026-01-20", "09:00")

    with ThreadPoolExecutor(max_workers=2) as pool:
        esiti = list(pool.map(reservar, ["1155550001", "1155550002"]))

    assert all(e.turno["id"] for e in esiti)
    turnos = store.select("turnos", filters={"fecha": "2026-01-20", "hora": "09:00"})
    assert len(turnos) == 2


def test_abrir_horarios_reabre(agenda: Agenda, clinica: dict):
    agenda.crear_turno(clinica["id"], "Ana", "1155550001", None, "2026-01-20", "09:00")
    assert agenda.consultar_disponibilidad(clinica["id"], "2026-01-20") == []

    slots = agenda.abrir_horarios(clinica["id"], "2026-01-20", ["09:00", "09:30"])
    assert [s["hora"] for s in slots] == ["09:00:00", "09:30:00"]
    assert [s["hora"] for s in agenda.consultar_disponibilidad(clinica["id"], "2026-01-20")] == ["09:00:00", "09:30:00"]


def test_reagendar_solo_hora_conserva_la_fecha(agenda: Agenda, clinica: dict):
    esito = agenda.crear_turno(clinica["id"], "Ana", "1155550001", None, "2026-01-20", "09:00")

    turno = agenda.reagendar_turno(esito.turno["id"], hora="12:45")
    assert turno["fecha"] == "2026-01-20"
    assert turno["hora"] == "12:45:00"
    assert turno["estado"] == "reagendado"


def test_crear_turno_sin_email_no_toca_el_cliente(agenda: Agenda, clinica: dict, store: SqlStore):
    agenda.registrar_cliente(clinica["id"], "Ana", "1155550001", "ana@example.com")

    agenda.crear_turno(clinica_id=clinica["id"], nombre="Ana", telefono="1155550001", fecha="2026-01-20", hora="09:00")
    assert store.select_one("clientes", {"telefono": "1155550001"})["email"] == "ana@example.com"
