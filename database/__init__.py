"""
Database Package Initialization.

============================================================
DATABASE PERSISTENCE LAYER
============================================================

SQLAlchemy-backed slot for the state store's persisted
branches. Selected with STATE_PERSISTENCE_BACKEND=database.

============================================================
"""

from .engine import (
    Base,
    create_all_tables,
    create_database_engine,
    create_session_factory,
    get_database_url,
    transaction_scope,
    verify_database_connection,
)
from .models import StateSlot
from .slot_backend import DatabaseBackend

__all__ = [
    "Base",
    "create_all_tables",
    "create_database_engine",
    "create_session_factory",
    "get_database_url",
    "transaction_scope",
    "verify_database_connection",
    "StateSlot",
    "DatabaseBackend",
]
