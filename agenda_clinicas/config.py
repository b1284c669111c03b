from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DEFAULT_PORT = 3000
DEFAULT_DATABASE_URL = "sqlite:///agenda_clinicas.sqlite"


class ConfigError(RuntimeError):
    """Variabili d'ambiente obbligatorie mancanti o non valide."""


@dataclass(frozen=True)
class Config:
    supabase_url: str | None
    supabase_service_role: str | None
    port: int = DEFAULT_PORT
    cors_origins: tuple[str, ...] = ("*",)
    log_level: str = "INFO"
    database_url: str = DEFAULT_DATABASE_URL

    def require_supabase(self) -> None:
        if not self.supabase_url or not self.supabase_service_role:
            raise ConfigError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE env vars")


def _parse_port(raw: str | None) -> int:
    if not raw:
        return DEFAULT_PORT
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"PORT non valido: {raw!r}") from None


def _parse_origins(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ("*",)
    return tuple(o.strip() for o in raw.split(",") if o.strip())


def load_config(environ: dict[str, str] | None = None) -> Config:
    """
    Legge la configurazione dall'ambiente (.env incluso).
    Le credenziali Supabase vengono verificate solo da chi le usa (require_supabase).
    """
    env = os.environ if environ is None else environ
    return Config(
        supabase_url=env.get("SUPABASE_URL") or None,
        supabase_service_role=env.get("SUPABASE_SERVICE_ROLE") or None,
        port=_parse_port(env.get("PORT")),
        cors_origins=_parse_origins(env.get("CORS_ORIGINS")),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        database_url=env.get("DATABASE_URL") or DEFAULT_DATABASE_URL,
    )
