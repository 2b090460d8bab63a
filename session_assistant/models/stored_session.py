"""Stored Session ORM — one serialized Session blob per storage key.

Invariants:
    - key is the primary key; the application only ever uses one key
    - payload is the JSON text produced by session_to_snapshot
"""

from datetime import datetime, timezone

from sqlalchemy import String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from session_assistant.db.base import Base


class StoredSession(Base):
    """Key-value row holding the active session snapshot."""
    __tablename__ = "stored_sessions"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
