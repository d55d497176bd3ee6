"""
Continuity strategies
- Decide how a query is framed so the assistant remembers earlier turns.
- HistoryReplayStrategy: prepend recent stored messages as a text preamble.
- SessionResumeStrategy: give the CLI a per-user session id and resume it on later turns.

Exactly one strategy is active per executor, so a turn never carries both
replayed history and a resumed conversation.
"""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from logging import getLogger
from typing import Callable, Dict, Optional

from relay_worker.application.services.session_manager import SessionManager
from relay_worker.settings import ContinuityMode

logger = getLogger(__name__)


@dataclass(frozen=True)
class Invocation:
    """Prompt text plus CLI arguments contributed by the strategy."""
    prompt: str
    extra_args: tuple[str, ...] = field(default_factory=tuple)


def _with_context(context: str, query: str) -> str:
    return f"{context}\n{query}" if context else query


class ContinuityStrategy(ABC):
    @abstractmethod
    async def prepare(self, user_id: str, query: str) -> Invocation:
        ...

    @abstractmethod
    def forget(self, user_id: str) -> None:
        """Drop any per-user continuity state."""
        ...

    def commit(self, user_id: str) -> None:
        """The prepared turn succeeded."""
        return None

    def discard(self, user_id: str) -> None:
        """The prepared turn failed; undo whatever `prepare` started."""
        return None


class HistoryReplayStrategy(ContinuityStrategy):
    def __init__(self, session_manager: SessionManager, context_turns: int = 5):
        self.session_manager = session_manager
        self.context_turns = context_turns

    async def prepare(self, user_id: str, query: str) -> Invocation:
        context = await self.session_manager.build_context(user_id, self.context_turns)
        return Invocation(prompt=_with_context(context, query))

    def forget(self, user_id: str) -> None:
        # Stored history is cleared by the session manager itself
        return None


class SessionResumeStrategy(ContinuityStrategy):
    """
    Per-user state machine: Fresh (no handle) -> Resumed (handle held).

    A handle minted by `prepare` stays pending until the turn succeeds. A failed
    first turn leaves the user Fresh, so the retry opens a new conversation
    (seeded again) instead of resuming one the CLI never created.

    Handles live only in memory. After a restart every user is Fresh again;
    with `seed_from_history` the first new conversation is seeded with the
    stored history so the restart is not a memory wipe.
    """

    def __init__(
            self,
            session_manager: SessionManager,
            *,
            seed_from_history: bool = True,
            context_turns: int = 5,
            id_factory: Optional[Callable[[], str]] = None,
    ):
        self.session_manager = session_manager
        self.seed_from_history = seed_from_history
        self.context_turns = context_turns
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._handles: Dict[str, str] = {}
        self._pending: Dict[str, str] = {}

    def handle_for(self, user_id: str) -> Optional[str]:
        return self._handles.get(user_id)

    async def prepare(self, user_id: str, query: str) -> Invocation:
        handle = self._handles.get(user_id)
        if handle is not None:
            logger.info("🔁 Resuming assistant session %s for user %s", handle, user_id)
            return Invocation(prompt=query, extra_args=("--resume", handle))

        handle = self._id_factory()
        self._pending[user_id] = handle
        logger.info("🆕 Opening assistant session %s for user %s", handle, user_id)

        prompt = query
        if self.seed_from_history:
            context = await self.session_manager.build_context(user_id, self.context_turns)
            prompt = _with_context(context, query)
        return Invocation(prompt=prompt, extra_args=("--session-id", handle))

    def commit(self, user_id: str) -> None:
        handle = self._pending.pop(user_id, None)
        if handle is not None:
            self._handles[user_id] = handle

    def discard(self, user_id: str) -> None:
        handle = self._pending.pop(user_id, None)
        if handle is not None:
            logger.info("↩️ Assistant session %s for user %s was never opened", handle, user_id)

    def forget(self, user_id: str) -> None:
        self._pending.pop(user_id, None)
        handle = self._handles.pop(user_id, None)
        if handle is not None:
            logger.info("🗑️ Dropped assistant session %s for user %s", handle, user_id)


def make_strategy(
        mode: ContinuityMode,
        session_manager: SessionManager,
        *,
        context_turns: int = 5,
        seed_from_history: bool = True,
) -> ContinuityStrategy:
    if mode == ContinuityMode.RESUME:
        return SessionResumeStrategy(
            session_manager,
            seed_from_history=seed_from_history,
            context_turns=context_turns,
        )
    return HistoryReplayStrategy(session_manager, context_turns=context_turns)
