"""Database connections package."""

from newsroom.db.postgres import async_session, engine, get_session, init_db, upsert_insert

__all__ = ["async_session", "engine", "get_session", "init_db", "upsert_insert"]
