import pytest

from agenda_clinicas.sql_store import SqlStore
from agenda_clinicas.store import Embed, StoreError


def test_tabla_inexistente(store: SqlStore):
    with pytest.raises(StoreError) as exc_info:
        store.select("mascotas")
    assert exc_info.value.payload["code"] == "42P01"


def test_columna_inexistente(store: SqlStore, clinica: dict):
    with pytest.raises(StoreError) as exc_info:
        store.insert("clinicas", {"nombre": "X", "telefono_whatsapp": "1", "direccion": "Calle 1"})
    assert exc_info.value.payload["code"] == "PGRST204"

    with pytest.raises(StoreError) as exc_info:
        store.select("clinicas", filters={"direccion": "Calle 1"})
    assert exc_info.value.payload["code"] == "42703"


def test_fecha_invalida(store: SqlStore, clinica: dict):
    with pytest.raises(StoreError) as exc_info:
        store.select("turnos", filters={"fecha": "20/01/2026"})
    assert exc_info.value.payload["code"] == "22P02"


def test_telefono_duplicado_en_insert(store: SqlStore, clinica: dict):
    fila = {"clinica_id": clinica["id"], "nombre": "Ana", "telefono": "1155550001", "email": None}
    store.insert("clientes", fila)
    with pytest.raises(StoreError) as exc_info:
        store.insert("clientes", fila)
    assert exc_info.value.payload["code"] == "23505"


def test_orden_y_limite(store: SqlStore, clinica: dict):
    for hora in ("10:00", "08:00", "12:00"):
        store.insert("disponibilidad", {"clinica_id": clinica["id"], "fecha": "2026-01-20", "hora": hora})

    desc = store.select("disponibilidad", order_by="hora", ascending=False, limit=2)
    assert [r["hora"] for r in desc] == ["12:00:00", "10:00:00"]
    # default della colonna applicato dallo store
    assert all(r["disponible"] is True for r in desc)


def test_select_one(store: SqlStore, clinica: dict):
    assert store.select_one("disponibilidad", {"clinica_id": clinica["id"], "fecha": "2026-01-20"}) is None
    assert store.select_one("clinicas", {"id": clinica["id"]})["nombre"] == clinica["nombre"]


def test_update_sin_filas(store: SqlStore):
    with pytest.raises(StoreError) as exc_info:
        store.update("turnos", {"estado": "confirmado"}, filters={"id": "nada"})
    assert exc_info.value.payload["code"] == "PGRST116"
    assert exc_info.value.payload["details"] == "The result contains 0 rows"


def test_update_varias_filas(store: SqlStore, clinica: dict):
    for hora in ("10:00", "11:00"):
        store.insert("disponibilidad", {"clinica_id": clinica["id"], "fecha": "2026-01-20", "hora": hora})

    with pytest.raises(StoreError):
        store.update("disponibilidad", {"disponible": False}, filters={"clinica_id": clinica["id"]})
    # nessuna modifica applicata
    assert all(r["disponible"] for r in store.select("disponibilidad"))


def test_upsert_solo_clave(store: SqlStore, clinica: dict):
    clave = {"clinica_id": clinica["id"], "fecha": "2026-01-20", "hora": "09:00"}
    primera = store.upsert("disponibilidad", clave, on_conflict=("clinica_id", "fecha", "hora"))
    segunda = store.upsert("disponibilidad", clave, on_conflict=("clinica_id", "fecha", "hora"))
    assert primera == segunda


def test_embed_sin_relacion(store: SqlStore, clinica: dict):
    with pytest.raises(StoreError) as exc_info:
        store.select("clinicas", embed=Embed("turnos", ("hora",)))
    assert exc_info.value.payload["code"] == "PGRST200"


def test_embed_con_id(store: SqlStore, clinica: dict):
    cliente = store.insert(
        "clientes", {"clinica_id": clinica["id"], "nombre": "Ana", "telefono": "1155550001", "email": None}
    )
    store.insert("turnos", {"clinica_id": clinica["id"], "cliente_id": cliente["id"], "fecha": "2026-01-20", "hora": "09:00"})

    filas = store.select("turnos", embed=Embed("clientes", ("id", "nombre")))
    assert filas[0]["clientes"] == {"id": cliente["id"], "nombre": "Ana"}
