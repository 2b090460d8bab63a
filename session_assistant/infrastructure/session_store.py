"""Session Store — single-slot persistence adapter for the active Session.

Invariants:
    - Exactly one row, keyed by the configured storage key, holds the snapshot JSON
    - load() never raises: missing → None, malformed → None (and the row is cleared),
      storage failure → None
    - save() and clear() never raise: failures are logged and swallowed
    - Last successful save reflects the most recent Session passed to save()

Design Decisions:
    - Persistence failures are non-fatal by contract: the wizard keeps running on the
      in-memory Session and a failed load is a clean slate
    - Shape validation happens here (session_from_snapshot) so callers only ever see
      a valid Session or None
"""

import json
import logging

from session_assistant.core.errors import PersistenceError, SessionValidationError
from session_assistant.core.session_model import Session
from session_assistant.core.session_snapshot import (
    session_from_snapshot, session_to_snapshot,
)
from session_assistant.infrastructure.database import DatabaseSessionManager
from session_assistant.models.stored_session import StoredSession

logger = logging.getLogger(__name__)


class SqlSessionStore:
    """SessionStore backed by the stored_sessions table."""

    def __init__(self, db: DatabaseSessionManager, key: str = "usba-session") -> None:
        self._db = db
        self.key = key

    async def load(self) -> Session | None:
        try:
            async with self._db.session() as db:
                row = await db.get(StoredSession, self.key)
                payload = row.payload if row is not None else None
        except PersistenceError as e:
            logger.error(
                f"Failed to load session from storage: {e.message}",
                extra={"operation": "load", "error_code": e.code},
            )
            return None

        if payload is None:
            return None

        try:
            return session_from_snapshot(json.loads(payload))
        # covers JSONDecodeError and integers past the digit limit
        except (ValueError, SessionValidationError) as e:
            logger.warning(
                f"Discarding malformed stored session: {e}",
                extra={"operation": "load"},
            )
            await self.clear()
            return None

    async def save(self, session: Session) -> None:
        payload = json.dumps(session_to_snapshot(session), ensure_ascii=False)
        try:
            async with self._db.session() as db:
                row = await db.get(StoredSession, self.key)
                if row is None:
                    db.add(StoredSession(key=self.key, payload=payload))
                else:
                    row.payload = payload
                await db.commit()
        except PersistenceError as e:
            logger.error(
                f"Failed to save session to storage: {e.message}",
                extra={"operation": "save", "error_code": e.code},
            )

    async def clear(self) -> None:
        try:
            async with self._db.session() as db:
                row = await db.get(StoredSession, self.key)
                if row is not None:
                    await db.delete(row)
                    await db.commit()
        except PersistenceError as e:
            logger.error(
                f"Failed to clear stored session: {e.message}",
                extra={"operation": "clear", "error_code": e.code},
            )
