from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from agenda_clinicas.api_main import create_app
from agenda_clinicas.config import Config, ConfigError, load_config
from agenda_clinicas.logs import setup_logging
from agenda_clinicas.services import Agenda
from agenda_clinicas.sql_store import SqlStore
from agenda_clinicas.store import StoreError, TableStore
from agenda_clinicas.supabase_store import SupabaseStore

logger = logging.getLogger("agenda_clinicas")


def build_store(config: Config, local: bool) -> TableStore:
    """Store locale (SQLAlchemy su DATABASE_URL) oppure Supabase (credenziali obbligatorie)."""
    if local:
        return SqlStore.from_url(config.database_url)
    return SupabaseStore.from_config(config)


def cmd_serve(args: argparse.Namespace, config: Config) -> None:
    app = create_app(build_store(config, args.local), cors_origins=config.cors_origins)
    port = args.port or config.port
    logger.info("API Clinicas OK (porta %s)", port)
    uvicorn.run(app, host=args.host, port=port, log_level=config.log_level.lower())


def cmd_init_db(args: argparse.Namespace, config: Config) -> None:
    store = SqlStore.from_url(config.database_url)
    print(f"DB inizializzato: {store.engine.url}")


def cmd_abrir_horarios(args: argparse.Namespace, config: Config) -> None:
    agenda = Agenda(build_store(config, args.local))
    for slot in agenda.abrir_horarios(args.clinica_id, args.fecha, args.horas):
        print(f"{slot['fecha']} {slot['hora']} | disponible={slot['disponible']}")


def cmd_hoy(args: argparse.Namespace, config: Config) -> None:
    agenda = Agenda(build_store(config, args.local))
    turnos = agenda.turnos_de_hoy(args.clinica_id)
    if not turnos:
        print("Nessun turno per oggi.")
        return
    for t in turnos:
        cliente = t.get("clientes") or {}
        print(f"{t['hora']} | {t['estado']} | {cliente.get('nombre', '-')} ({cliente.get('telefono', '-')}) | {t['id']}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="agenda_clinicas", description="API turni per cliniche")
    sub = p.add_subparsers(required=True)

    local = argparse.ArgumentParser(add_help=False)
    local.add_argument("--local", action="store_true", help="Usa lo store SQL locale (DATABASE_URL) invece di Supabase")

    p_serve = sub.add_parser("serve", parents=[local], help="Avvia l'API HTTP")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=None, help="Default: PORT o 3000")
    p_serve.set_defaults(func=cmd_serve)

    p_init = sub.add_parser("init-db", help="Crea le tabelle nello store SQL locale")
    p_init.set_defaults(func=cmd_init_db)

    p_slots = sub.add_parser("abrir-horarios", parents=[local], help="Apre slot di disponibilità per una data")
    p_slots.add_argument("--clinica-id", required=True)
    p_slots.add_argument("--fecha", required=True, help="es: 2026-01-14")
    p_slots.add_argument("--horas", nargs="+", required=True, help="es: 09:00 09:30 10:00")
    p_slots.set_defaults(func=cmd_abrir_horarios)

    p_hoy = sub.add_parser("hoy", parents=[local], help="Turni di oggi per una clinica")
    p_hoy.add_argument("--clinica-id", required=True)
    p_hoy.set_defaults(func=cmd_hoy)

    return p


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config()
    except ConfigError as exc:
        setup_logging()
        logger.error("%s", exc)
        sys.exit(1)
    setup_logging(config.log_level)

    try:
        args.func(args, config)
    except ConfigError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    except StoreError as exc:
        logger.error("Errore dello store: %s", exc.payload)
        sys.exit(1)


if __name__ == "__main__":
    main()
