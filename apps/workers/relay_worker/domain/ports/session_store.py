# apps/workers/relay_worker/domain/ports/session_store.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict

from relay_worker.domain.entities import Session


class SessionStore(ABC):
    """
    Port (contract) for durable session records.
    - One logical record per user_id; writes for different users never interfere.
    - Last write wins: no versioning, no optimistic concurrency.
    - Implementations may target a directory of JSON files, Postgres, or any key-value store.
    """

    @abstractmethod
    async def load_all(self) -> Dict[str, Session]:
        """
        Load every stored session keyed by user_id.
        A record that fails to parse is skipped; an empty or missing location yields {}.
        """
        ...

    @abstractmethod
    async def save(self, session: Session) -> None:
        """Write the full record for session.user_id, overwriting any prior version."""
        ...

    @abstractmethod
    async def delete(self, user_id: str) -> None:
        """Remove the record for user_id. Absence is not an error."""
        ...

    async def close(self) -> None:
        """Release any resources held by the store (pools, handles)."""
        pass
