from __future__ import annotations

import itertools
from typing import Dict, List, Mapping, Optional, Sequence

import pytest

from relay_worker.domain.entities import Session
from relay_worker.domain.ports.session_store import SessionStore
from relay_worker.domain.values import ProcessResult


class MemorySessionStore(SessionStore):
    """In-memory store that keeps serialized copies, like a real medium would."""

    def __init__(self) -> None:
        self.records: Dict[str, str] = {}
        self.saves = 0
        self.deletes = 0

    async def load_all(self) -> Dict[str, Session]:
        return {uid: Session.model_validate_json(raw) for uid, raw in self.records.items()}

    async def save(self, session: Session) -> None:
        self.saves += 1
        self.records[session.user_id] = session.to_json()

    async def delete(self, user_id: str) -> None:
        self.deletes += 1
        self.records.pop(user_id, None)


class BrokenSessionStore(SessionStore):
    async def load_all(self) -> Dict[str, Session]:
        raise OSError("disk unavailable")

    async def save(self, session: Session) -> None:
        raise OSError("disk full")

    async def delete(self, user_id: str) -> None:
        raise PermissionError("read-only filesystem")


class FakeRunner:
    """ProcessRunner double: records calls and replays scripted outcomes (results or exceptions)."""

    def __init__(self, outcomes: Optional[List[object]] = None) -> None:
        self.outcomes = list(outcomes or [])
        self.calls: List[dict] = []

    def _next(self) -> ProcessResult:
        outcome = self.outcomes.pop(0) if self.outcomes else ProcessResult(0, "", "")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def run(
            self,
            argv: Sequence[str],
            *,
            cwd: Optional[str] = None,
            timeout_ms: int,
            env: Optional[Mapping[str, str]] = None,
    ) -> ProcessResult:
        self.calls.append({"argv": list(argv), "cwd": cwd, "timeout_ms": timeout_ms})
        return self._next()

    async def run_shell(self, command: str, *, cwd: Optional[str] = None, timeout_ms: int) -> ProcessResult:
        self.calls.append({"command": command, "cwd": cwd, "timeout_ms": timeout_ms})
        return self._next()


@pytest.fixture
def memory_store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def broken_store() -> BrokenSessionStore:
    return BrokenSessionStore()


@pytest.fixture
def clock():
    """Monotonic fake clock in epoch ms: 1000, 1001, 1002, ..."""
    counter = itertools.count(1000)
    return lambda: next(counter)
