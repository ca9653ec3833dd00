"""
Database ORM Models.

============================================================
SCHEMA
============================================================

state_slots: one row per storage key holding the JSON text
of the persisted state branches.

============================================================
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from .engine import Base


def utc_now():
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


class StateSlot(Base):
    """
    Persisted snapshot of the state store.

    Source: core.persistence.StatePersistence
    Update Frequency: Every state mutation
    """
    __tablename__ = "state_slots"

    key = Column(String(255), primary_key=True)
    payload = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    def __repr__(self) -> str:
        return f"<StateSlot key={self.key!r} size={len(self.payload or '')}>"


__all__ = [
    "StateSlot",
    "utc_now",
]
