"""
Conversation entities
- Session: one rolling conversation per chat user (oldest message first).
- Message: one role-tagged turn-half, immutable once created.

Serialized with camelCase keys (userId, createdAt, lastActivityAt) so records
written by earlier versions of the bot load unchanged.
"""
from __future__ import annotations

import time
from typing import List, Literal

from pydantic import ConfigDict, Field

from relay_worker.domain.camel import CamelModel

# Exactly two roles; there is no system/tool turn in a relayed conversation
Role = Literal["user", "assistant"]

ROLE_LABELS: dict[str, str] = {"user": "User", "assistant": "Assistant"}


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


class Message(CamelModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    timestamp: int  # epoch ms


class Session(CamelModel):
    """
    Stored conversation state for one user identity.
    - user_id is the primary key (and names the durable record).
    - messages keeps insertion order; it is only appended to or front-truncated.
    """
    user_id: str
    messages: List[Message] = Field(default_factory=list)
    created_at: int
    last_activity_at: int

    @classmethod
    def empty(cls, user_id: str, at: int) -> "Session":
        return cls(user_id=user_id, messages=[], created_at=at, last_activity_at=at)
