from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, time

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


class EstadoTurno(enum.Enum):
    PENDIENTE = "pendiente"
    CONFIRMADO = "confirmado"
    REAGENDADO = "reagendado"


class Clinica(Base):
    __tablename__ = "clinicas"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nombre: Mapped[str] = mapped_column(String(120), nullable=False)
    telefono_whatsapp: Mapped[str] = mapped_column(String(30), nullable=False)
    creada_el: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"Clinica({self.nombre}, {self.telefono_whatsapp})"


class Cliente(Base):
    __tablename__ = "clientes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinica_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False)
    nombre: Mapped[str] = mapped_column(String(120), nullable=False)
    # chiave dell'upsert: unica su tutto lo store, non per clinica
    telefono: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)

    def __repr__(self) -> str:
        return f"Cliente({self.nombre}, {self.telefono})"


class Disponibilidad(Base):
    __tablename__ = "disponibilidad"
    __table_args__ = (UniqueConstraint("clinica_id", "fecha", "hora", name="uq_disp_clinica_fecha_hora"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clinica_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False)
    fecha: Mapped[date] = mapped_column(Date, nullable=False)
    hora: Mapped[time] = mapped_column(Time, nullable=False)
    disponible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Turno(Base):
    __tablename__ = "turnos"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinica_id: Mapped[str] = mapped_column(ForeignKey("clinicas.id"), nullable=False)
    cliente_id: Mapped[str] = mapped_column(ForeignKey("clientes.id"), nullable=False)
    fecha: Mapped[date] = mapped_column(Date, nullable=False)
    hora: Mapped[time] = mapped_column(Time, nullable=False)
    estado: Mapped[str] = mapped_column(String(20), default=EstadoTurno.PENDIENTE.value, nullable=False)

    def __repr__(self) -> str:
        return f"Turno({self.fecha} {self.hora}, {self.estado})"
