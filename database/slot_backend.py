"""
Database Persistence Layer - State Slot Backend.

============================================================
RESPONSIBILITY
============================================================
PersistenceBackend writing the state store's snapshot slot to
the ``state_slots`` table through SQLAlchemy.

Errors are raised as PersistenceError; StatePersistence logs
them and keeps running memory-only.

============================================================
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from core.persistence import PersistenceBackend

from .engine import create_all_tables, create_database_engine, create_session_factory, transaction_scope
from .models import StateSlot, utc_now

logger = logging.getLogger(__name__)


class DatabaseBackend(PersistenceBackend):
    """One row per storage key in ``state_slots``."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @classmethod
    def from_engine(cls, engine: Engine, create_tables: bool = True) -> "DatabaseBackend":
        if create_tables:
            create_all_tables(engine)
        return cls(create_session_factory(engine))

    @classmethod
    def from_url(cls, database_url: Optional[str] = None, echo: bool = False) -> "DatabaseBackend":
        """Backend on a fresh engine, tables created if missing."""
        return cls.from_engine(create_database_engine(database_url, echo=echo))

    def load(self, key: str) -> Optional[str]:
        with transaction_scope(self._session_factory) as session:
            slot = session.get(StateSlot, key)
            return slot.payload if slot else None

    def save(self, key: str, data: str) -> None:
        with transaction_scope(self._session_factory) as session:
            slot = session.get(StateSlot, key)
            if slot is None:
                session.add(StateSlot(key=key, payload=data))
            else:
                slot.payload = data
                slot.updated_at = utc_now()
        logger.debug(f"State slot saved | key={key} | bytes={len(data)}")

    def remove(self, key: str) -> None:
        with transaction_scope(self._session_factory) as session:
            slot = session.get(StateSlot, key)
            if slot is not None:
                session.delete(slot)
                logger.info(f"State slot removed | key={key}")

    def keys(self) -> List[str]:
        with transaction_scope(self._session_factory) as session:
            return list(session.scalars(select(StateSlot.key).order_by(StateSlot.key)))


__all__ = [
    "DatabaseBackend",
]
