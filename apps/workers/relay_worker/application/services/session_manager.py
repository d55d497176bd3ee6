# relay_worker/application/services/session_manager.py
from __future__ import annotations

from logging import getLogger
from typing import Callable, Dict, List, Optional

from relay_worker.domain.entities import ROLE_LABELS, Message, Role, Session, now_ms
from relay_worker.domain.ports.session_store import SessionStore
from relay_worker.domain.values import SessionStats

logger = getLogger(__name__)

CONTEXT_HEADER = "Previous conversation:"
CONTEXT_TRAILER = "\n\nCurrent query:"


class SessionManager:
    """
    SessionManager
    --------------
    Owns the in-memory session map and the bounded-history policy.

    - The in-memory map is the source of truth for the process lifetime.
    - Every mutation is persisted through the SessionStore; storage failures
      are logged and swallowed so a broken disk never fails a chat turn.
    - Histories are capped at `max_messages_per_session`, dropping the oldest.
    """

    def __init__(
            self,
            store: SessionStore,
            max_messages_per_session: int = 50,
            clock: Optional[Callable[[], int]] = None,
    ) -> None:
        if max_messages_per_session < 1:
            raise ValueError("max_messages_per_session must be >= 1")
        self._store = store
        self._sessions: Dict[str, Session] = {}
        self.max_messages_per_session = max_messages_per_session
        self._clock = clock or now_ms

    async def initialize(self) -> None:
        """Load every stored session into memory."""
        try:
            self._sessions = dict(await self._store.load_all())
        except Exception:
            logger.exception("❌ Failed to load sessions; starting with none")
            self._sessions = {}
        logger.info("📂 %d session(s) in memory", len(self._sessions))

    async def get_or_create(self, user_id: str) -> Session:
        session = self._sessions.get(user_id)
        if session is None:
            session = Session.empty(user_id, self._clock())
            self._sessions[user_id] = session
            await self._persist(session)
        return session

    async def append_message(self, user_id: str, role: Role, content: str) -> None:
        session = await self.get_or_create(user_id)
        at = self._clock()
        session.messages.append(Message(role=role, content=content, timestamp=at))

        # Keep only the last N messages to prevent unlimited growth
        overflow = len(session.messages) - self.max_messages_per_session
        if overflow > 0:
            del session.messages[:overflow]

        session.last_activity_at = at
        await self._persist(session)

    async def get_history(self, user_id: str, last_n: Optional[int] = None) -> List[Message]:
        """Messages oldest-first; only the most recent `last_n` when given."""
        session = await self.get_or_create(user_id)
        if last_n:
            return list(session.messages[-last_n:])
        return list(session.messages)

    async def build_context(self, user_id: str, last_n: int = 10) -> str:
        """
        Render recent history as a preamble for the assistant.
        Returns "" when there is nothing to replay.
        """
        history = await self.get_history(user_id, last_n)
        if not history:
            return ""

        turns = "\n\n".join(f"{ROLE_LABELS[m.role]}: {m.content}" for m in history)
        return f"{CONTEXT_HEADER}\n{turns}{CONTEXT_TRAILER}"

    async def clear(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)
        try:
            await self._store.delete(user_id)
        except Exception:
            logger.exception("❌ Failed to delete session record user_id=%s", user_id)

    def stats(self) -> SessionStats:
        return SessionStats(
            total_sessions=len(self._sessions),
            total_messages=sum(len(s.messages) for s in self._sessions.values()),
        )

    async def _persist(self, session: Session) -> None:
        try:
            await self._store.save(session)
        except Exception:
            logger.exception("❌ Failed to persist session user_id=%s", session.user_id)
