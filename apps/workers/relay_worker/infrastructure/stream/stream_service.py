"""
Relay reply stream
- Every relay job answers on its own Redis Stream: sse:relay:{job_id}:{user_id}:events
- Entries are {event, data (JSON), ts (epoch ms)}; the gateway tails the key and forwards to chat.
- A job always ends with `done`, after which the key expires.
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass
from logging import getLogger
from typing import Any, Dict, Literal, Optional

from redis.asyncio import Redis

logger = getLogger(__name__)

EventType = Literal["meta", "final", "error", "done", "ping"]
ALLOWED_EVENTS: frozenset[str] = frozenset({"meta", "final", "error", "done", "ping"})

# Keys that address the stream, never part of the payload
_ROUTING_KEYS = ("event", "job_id", "user_id")


@dataclass(frozen=True)
class StreamConfig:
    maxlen_approx: int = 1000  # XADD MAXLEN ~N
    done_ttl_sec: int = 60     # grace period for late readers after `done`


def stream_key(job_id: str, user_id: str) -> str:
    return f"sse:relay:{job_id}:{user_id}:events"


@dataclass
class JobPublisher:
    """Awaitable callable bound to one (job_id, user_id) stream; returns the entry id."""
    redis: Redis
    key: str
    cfg: StreamConfig

    async def __call__(self, evt: Dict[str, Any]) -> str:
        event = evt.get("event")
        if not isinstance(event, str) or event not in ALLOWED_EVENTS:
            raise ValueError(f"unsupported stream event: {event!r}")

        data = {k: v for k, v in evt.items() if k not in _ROUTING_KEYS}
        entry = {
            "event": event,
            "data": json.dumps(data, ensure_ascii=False, separators=(",", ":")),
            "ts": str(int(time.time() * 1000)),
        }
        sid: str = await self.redis.xadd(
            self.key,
            entry,  # type: ignore[arg-type]
            maxlen=self.cfg.maxlen_approx,
            approximate=True,
        )
        if event == "done":
            await self.redis.expire(self.key, self.cfg.done_ttl_sec)
            logger.debug("🏁 %s closed (sid=%s)", self.key, sid)
        return sid


class StreamService:
    """Hands out per-job publishers over an externally managed Redis client."""

    def __init__(self, redis: Redis, *, cfg: Optional[StreamConfig] = None):
        if redis is None:
            raise ValueError("redis client must be provided")
        self.redis = redis
        self.cfg = cfg or StreamConfig()

    def make_job_publisher(self, job_id: str, user_id: str) -> JobPublisher:
        return JobPublisher(self.redis, stream_key(job_id, user_id), self.cfg)
