"""Postgres access for published theory content."""

from app.storage.config import DBConfig, DBEnvironment
from app.storage.db_client import DBClient

__all__ = ["DBClient", "DBConfig", "DBEnvironment"]
