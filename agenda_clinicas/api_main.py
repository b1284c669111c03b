from __future__ import annotations

from typing import Any, Sequence

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from agenda_clinicas.services import Agenda, HorarioNoDisponible
from agenda_clinicas.store import StoreError, TableStore

# id come stringhe (uuid) o interi, a seconda dello schema dello store
Id = str | int


# Schemi
# Tutti i campi sono opzionali. Allo store arrivano solo i campi inviati
# (model_dump(exclude_unset=True)): un campo obbligatorio mancante torna
# come errore di vincolo dello store (400), uno facoltativo resta invariato.

class ClinicaIn(BaseModel):
    nombre: str | None = None
    telefono_whatsapp: str | None = None


class ClienteIn(BaseModel):
    clinica_id: Id | None = None
    nombre: str | None = None
    telefono: str | None = None
    email: str | None = None


class TurnoIn(BaseModel):
    clinica_id: Id | None = None
    nombre: str | None = None
    telefono: str | None = None
    email: str | None = None
    fecha: str | None = None
    hora: str | None = None


class ConfirmarIn(BaseModel):
    turno_id: Id | None = None


class ReagendarIn(BaseModel):
    turno_id: Id | None = None
    fecha: str | None = None
    hora: str | None = None



# Dipendenze

def get_agenda(request: Request) -> Agenda:
    return request.app.state.agenda



# Errori

async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    # errore dello store inoltrato così com'è
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": exc.payload})


async def horario_no_disponible_handler(request: Request, exc: HorarioNoDisponible) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"error": str(exc)})



# Endpoints

def health() -> dict[str, Any]:
    return {"ok": True}


def crear_clinica(payload: ClinicaIn, agenda: Agenda = Depends(get_agenda)) -> dict[str, Any]:
    return agenda.crear_clinica(**payload.model_dump(exclude_unset=True))


def registrar_cliente(payload: ClienteIn, agenda: Agenda = Depends(get_agenda)) -> dict[str, Any]:
    return agenda.registrar_cliente(**payload.model_dump(exclude_unset=True))


def disponibilidad(
    clinica_id: str | None = Query(None),
    fecha: str | None = Query(None),
    agenda: Agenda = Depends(get_agenda),
) -> list[dict]:
    """
    Slot liberi per clinica e data, ordinati per ora.
    Un parametro mancante diventa un filtro IS NULL e la risposta è [] (200);
    lo store remoto non riceve mai un valore "undefined" da rifiutare.
    """
    return agenda.consultar_disponibilidad(clinica_id, fecha)


def crear_turno(payload: TurnoIn, response: Response, agenda: Agenda = Depends(get_agenda)) -> dict[str, Any]:
    """
    Prenotazione:
    - upsert cliente
    - verifica slot (409 se marcato non disponibile)
    - crea turno e segna lo slot come occupato
    L'header X-Horario-Marcado dice se l'ultimo passo è riuscito.
    """
    esito = agenda.crear_turno(**payload.model_dump(exclude_unset=True))
    response.headers["X-Horario-Marcado"] = "true" if esito.horario_marcado else "false"
    return esito.turno


def confirmar_turno(payload: ConfirmarIn, agenda: Agenda = Depends(get_agenda)) -> dict[str, Any]:
    return agenda.confirmar_turno(payload.turno_id)


def reagendar_turno(payload: ReagendarIn, agenda: Agenda = Depends(get_agenda)) -> dict[str, Any]:
    datos = payload.model_dump(exclude_unset=True)
    return agenda.reagendar_turno(datos.pop("turno_id", None), **datos)


def turnos_hoy(clinica_id: str, agenda: Agenda = Depends(get_agenda)) -> list[dict]:
    return agenda.turnos_de_hoy(clinica_id)



# App

def create_app(store: TableStore | Agenda, cors_origins: Sequence[str] = ("*",)) -> FastAPI:
    """
    Costruisce l'applicazione attorno a uno store già inizializzato.
    Lo store (o un'Agenda già costruita) è condiviso da tutte le richieste.
    """
    app = FastAPI(title="Agenda Clinicas API", version="1.0.0")
    app.state.agenda = store if isinstance(store, Agenda) else Agenda(store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Horario-Marcado"],
    )
    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(HorarioNoDisponible, horario_no_disponible_handler)

    app.get("/")(health)
    app.post("/clinicas/crear")(crear_clinica)
    app.post("/clientes/registrar")(registrar_cliente)
    app.get("/disponibilidad")(disponibilidad)
    app.post("/turnos/crear")(crear_turno)
    app.post("/turnos/confirmar")(confirmar_turno)
    app.post("/turnos/reagendar")(reagendar_turno)
    app.get("/turnos/hoy/{clinica_id}")(turnos_hoy)
    return app
