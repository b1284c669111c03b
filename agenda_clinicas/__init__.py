"""
Backend Agenda Clinicas: turni per cliniche veterinarie/mediche.

Struttura:
- config.py         : configurazione da ambiente (.env)
- store.py          : contratto TableStore e StoreError
- supabase_store.py : TableStore su Supabase (produzione)
- db.py / models.py : engine SQLAlchemy e tabelle dello store locale
- sql_store.py      : TableStore su SQLAlchemy (sviluppo locale e test)
- services.py       : logica di dominio (clinicas, clientes, disponibilidad, turnos)
- api_main.py       : API HTTP (FastAPI)
- cli.py            : avvio del server e comandi di servizio
"""
