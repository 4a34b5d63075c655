"""
In-memory, per-process session store.

Owns the map from session key to ConversationSession plus one asyncio.Lock
per key. Callers hold ``lock(key)`` for a whole turn so two messages for
the same session never interleave, while different sessions proceed in
parallel. Sessions are only removed by an explicit ``clear``.
"""

import asyncio
import logging
from typing import Optional

from carinsight.schemas.conversation_schema import ConversationSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Keyed holder of conversation state."""

    def __init__(self) -> None:
        self._sessions: dict[str, ConversationSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, session_id: str) -> Optional[ConversationSession]:
        return self._sessions.get(session_id)

    def get_or_create(
        self, session_id: str, user_id: Optional[str] = None
    ) -> ConversationSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = ConversationSession(session_id=session_id, user_id=user_id)
            self._sessions[session_id] = session
            logger.info("Session created: %s", session_id)
        return session

    def set(self, session_id: str, session: ConversationSession) -> None:
        self._sessions[session_id] = session

    def clear(self, session_id: str) -> bool:
        """Remove a session. Safe to call for unknown or already-cleared keys.

        The key's lock is kept: a turn still holding it must serialize
        with any later turn that recreates the same key.

        Returns:
            True if a session was removed.
        """
        removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info("Session cleared: %s", session_id)
        return removed

    def count(self) -> int:
        return len(self._sessions)

    def lock(self, session_id: str) -> asyncio.Lock:
        """The mutual-exclusion lock guarding one session's state."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
