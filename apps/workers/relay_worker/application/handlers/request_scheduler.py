"""
RequestScheduler
- One task per relay request, ordered per user and capped globally.
- A user's backlog waits on that user's lock, outside the concurrency cap,
  so it never holds slots other users could run in.
"""
from __future__ import annotations

import asyncio
from logging import getLogger
from typing import Any, Awaitable, Callable, Dict, Set

from relay_worker.application.dto.requests import RelayRequest
from relay_worker.application.handlers.on_relay_request import RelayRequestHandler
from relay_worker.application.utils.locks import KeyedLocks

logger = getLogger(__name__)

PublisherFactory = Callable[[str, str], Callable[[Dict[str, Any]], Awaitable[object]]]


class RequestScheduler:
    def __init__(
            self,
            handler: RelayRequestHandler,
            make_publisher: PublisherFactory,
            *,
            max_concurrent: int = 8,
    ) -> None:
        self._handler = handler
        self._make_publisher = make_publisher
        self._slots = asyncio.Semaphore(max_concurrent)
        self._users = KeyedLocks()
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, req: RelayRequest) -> asyncio.Task:
        task = asyncio.create_task(self._run(req), name=f"relay:{req.job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def _run(self, req: RelayRequest) -> None:
        async with self._users.hold(req.user_id):
            async with self._slots:
                publish = self._make_publisher(req.job_id, req.user_id)
                await self._handler.handle(req, publish)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("❌ %s died: %r", task.get_name(), exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait for every in-flight request; failures were already logged."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def __len__(self) -> int:
        return len(self._tasks)
