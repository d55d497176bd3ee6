from __future__ import annotations
from typing import Literal

from pydantic import Field

from relay_worker.domain.camel import CamelModel

RequestKind = Literal["query", "clear", "stats", "logs", "tmux", "processes", "sessions"]


class RelayRequest(CamelModel):
    """
    Kafka payload shape for `relay.request`.
    - query: `text` is forwarded to the assistant CLI.
    - clear: drop the user's history and external session handle.
    - stats / logs / tmux / processes: utility commands; `args` carries their parameters.
    - sessions: in-memory session counters.
    """
    job_id: str
    user_id: str
    kind: RequestKind = "query"
    text: str = ""
    args: list[str] = Field(default_factory=list)
