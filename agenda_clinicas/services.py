from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable

from .models import EstadoTurno
from .store import Embed, Row, StoreError, TableStore

logger = logging.getLogger(__name__)

CLINICAS = "clinicas"
CLIENTES = "clientes"
DISPONIBILIDAD = "disponibilidad"
TURNOS = "turnos"

CLAVE_CLIENTE = ("telefono",)
CLAVE_HORARIO = ("clinica_id", "fecha", "hora")


class _NoEnviado:
    def __repr__(self) -> str:
        return "NO_ENVIADO"


# campo assente nella richiesta: non va scritto nello store (diverso da None, che scrive null)
NO_ENVIADO: Any = _NoEnviado()


def _fila(**campos: Any) -> dict[str, Any]:
    return {k: v for k, v in campos.items() if v is not NO_ENVIADO}


def hoy_utc() -> date:
    """Data di calendario corrente del server (UTC)."""
    return datetime.now(timezone.utc).date()


# =========================
# Errori / DTO
# =========================
class HorarioNoDisponible(Exception):
    """Lo slot richiesto esiste ed è marcato come non disponibile."""

    def __init__(self, clinica_id: Any, fecha: Any, hora: Any) -> None:
        self.clinica_id = clinica_id
        self.fecha = fecha
        self.hora = hora
        super().__init__("Horario no disponible")


@dataclass(frozen=True)
class ResultadoReserva:
    """
    Esito di crear_turno.
    Il turno è sempre creato; horario_marcado=False indica che lo slot
    non è stato segnato come occupato (errore dello store in error_marcado).
    """
    turno: Row
    horario_marcado: bool
    error_marcado: Any | None = None

    @property
    def degradado(self) -> bool:
        return not self.horario_marcado


# =========================
# Agenda (use case)
# =========================
class Agenda:
    """
    Operazioni di prenotazione sopra un TableStore.
    Nessuno stato condiviso: ogni chiamata è una sequenza indipendente di richieste allo store.
    """

    def __init__(self, store: TableStore, hoy: Callable[[], date] = hoy_utc) -> None:
        self._store = store
        self._hoy = hoy

    @property
    def store(self) -> TableStore:
        return self._store

    def crear_clinica(self, nombre: Any = NO_ENVIADO, telefono_whatsapp: Any = NO_ENVIADO) -> Row:
        clinica = self._store.insert(CLINICAS, _fila(nombre=nombre, telefono_whatsapp=telefono_whatsapp))
        logger.info("Clinica creata: %s", clinica.get("id"))
        return clinica

    def registrar_cliente(
        self,
        clinica_id: Any = NO_ENVIADO,
        nombre: Any = NO_ENVIADO,
        telefono: Any = NO_ENVIADO,
        email: Any = NO_ENVIADO,
    ) -> Row:
        """
        Upsert per telefono: una seconda registrazione aggiorna la riga esistente.
        Solo i campi inviati vengono scritti; gli altri restano come sono.
        """
        return self._store.upsert(
            CLIENTES,
            _fila(clinica_id=clinica_id, nombre=nombre, telefono=telefono, email=email),
            on_conflict=CLAVE_CLIENTE,
        )

    def consultar_disponibilidad(self, clinica_id: Any, fecha: Any) -> list[Row]:
        # parametri mancanti (None) filtrano con IS NULL: risultato vuoto, non errore
        return self._store.select(
            DISPONIBILIDAD,
            filters={"clinica_id": clinica_id, "fecha": fecha, "disponible": True},
            order_by="hora",
        )

    def _horario(self, clinica_id: Any, fecha: Any, hora: Any) -> Row | None:
        # best effort: un errore in lettura (o una chiave incompleta) equivale a "nessun conflitto noto"
        if any(v is NO_ENVIADO for v in (clinica_id, fecha, hora)):
            return None
        try:
            return self._store.select_one(DISPONIBILIDAD, {"clinica_id": clinica_id, "fecha": fecha, "hora": hora})
        except StoreError as exc:
            logger.warning("Verifica disponibilità fallita, slot considerato libero: %s", exc.payload)
            return None

    def crear_turno(
        self,
        clinica_id: Any = NO_ENVIADO,
        nombre: Any = NO_ENVIADO,
        telefono: Any = NO_ENVIADO,
        email: Any = NO_ENVIADO,
        fecha: Any = NO_ENVIADO,
        hora: Any = NO_ENVIADO,
    ) -> ResultadoReserva:
        """
        Use case: prenotare un turno.
        - upsert del cliente per telefono
        - verifica dello slot (assenza di riga = libero)
        - inserimento del turno
        - slot marcato come occupato (l'errore non annulla la prenotazione)
        I passi non sono atomici: due prenotazioni concorrenti sullo stesso slot possono riuscire entrambe.
        """
        cliente = self.registrar_cliente(clinica_id, nombre, telefono, email)

        horario = self._horario(clinica_id, fecha, hora)
        if horario is not None and not horario.get("disponible"):
            raise HorarioNoDisponible(clinica_id, fecha, hora)

        turno = self._store.insert(
            TURNOS,
            _fila(clinica_id=clinica_id, cliente_id=cliente["id"], fecha=fecha, hora=hora),
        )
        logger.info("Turno creato: %s (%s %s)", turno.get("id"), fecha, hora)

        try:
            self._store.upsert(
                DISPONIBILIDAD,
                _fila(clinica_id=clinica_id, fecha=fecha, hora=hora, disponible=False),
                on_conflict=CLAVE_HORARIO,
            )
        except StoreError as exc:
            logger.warning("Turno %s creato ma slot non marcato come occupato: %s", turno.get("id"), exc.payload)
            return ResultadoReserva(turno, horario_marcado=False, error_marcado=exc.payload)

        return ResultadoReserva(turno, horario_marcado=True)

    def confirmar_turno(self, turno_id: Any) -> Row:
        turno = self._store.update(TURNOS, {"estado": EstadoTurno.CONFIRMADO.value}, filters={"id": turno_id})
        logger.info("Turno confermato: %s", turno_id)
        return turno

    def reagendar_turno(self, turno_id: Any, fecha: Any = NO_ENVIADO, hora: Any = NO_ENVIADO) -> Row:
        # non tocca la disponibilità: né lo slot vecchio né quello nuovo
        turno = self._store.update(
            TURNOS,
            _fila(fecha=fecha, hora=hora, estado=EstadoTurno.REAGENDADO.value),
            filters={"id": turno_id},
        )
        logger.info("Turno spostato: %s -> %s %s", turno_id, fecha, hora)
        return turno

    def turnos_de_hoy(self, clinica_id: Any) -> list[Row]:
        return self._store.select(
            TURNOS,
            filters={"clinica_id": clinica_id, "fecha": self._hoy().isoformat()},
            order_by="hora",
            embed=Embed(CLIENTES, ("nombre", "telefono")),
        )

    def abrir_horarios(self, clinica_id: Any, fecha: Any, horas: Iterable[Any]) -> list[Row]:
        """Apre (o riapre) gli slot indicati per la data."""
        return [
            self._store.upsert(
                DISPONIBILIDAD,
                {"clinica_id": clinica_id, "fecha": fecha, "hora": hora, "disponible": True},
                on_conflict=CLAVE_HORARIO,
            )
            for hora in horas
        ]
