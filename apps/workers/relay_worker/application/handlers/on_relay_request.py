from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import Any, Awaitable, Callable, Dict, Optional

from relay_worker.application.dto.requests import RelayRequest
from relay_worker.application.dto.results import ExecutionResult
from relay_worker.application.services.assistant_executor import AssistantExecutor
from relay_worker.application.services.session_manager import SessionManager
from relay_worker.application.services.system_tools import SystemTools

logger = getLogger(__name__)

Publish = Callable[[Dict[str, Any]], Awaitable[object]]

CLEARED_MESSAGE = "🗑️ Conversation history cleared. Starting fresh!"
UNAUTHORIZED_MESSAGE = "⛔ Unauthorized. This bot is private."
DEFAULT_LOG_LINES = 50


def _int_arg(args: list[str], index: int, default: int) -> int:
    try:
        value = int(args[index])
    except (IndexError, ValueError):
        return default
    return value if value > 0 else default


def _str_arg(args: list[str], index: int, default: str) -> str:
    try:
        value = args[index].strip()
    except IndexError:
        return default
    return value or default


@dataclass
class RelayRequestHandler:
    """
    Routes one relay request to the executor, session manager or system tools,
    and reports the outcome as stream events: meta, then final or error, then done.
    """
    executor: AssistantExecutor
    session_manager: SessionManager
    tools: SystemTools
    allowed_user_id: Optional[str] = None

    def is_authorized(self, user_id: str) -> bool:
        return self.allowed_user_id is None or user_id == self.allowed_user_id

    async def handle(self, req: RelayRequest, publish: Publish) -> None:
        if not self.is_authorized(req.user_id):
            logger.warning("⛔ Unauthorized access attempt from user ID: %s", req.user_id)
            await publish({"event": "error", "code": "UNAUTHORIZED", "message": UNAUTHORIZED_MESSAGE})
            await publish({"event": "done"})
            return

        await publish({"event": "meta", "kind": req.kind})
        try:
            result = await self._dispatch(req)
        except Exception as e:
            # Safety net: a broken turn must still end with error/done
            logger.exception("❌ [%s] relay request failed", req.job_id)
            await publish({"event": "error", "code": "UNCAUGHT", "message": str(e)})
            await publish({"event": "done"})
            return

        if result.success:
            await publish({"event": "final", "content": result.output})
        else:
            await publish({
                "event": "error",
                "code": "EXECUTION_FAILED",
                "message": result.error or "Unknown error occurred",
                "output": result.output,
            })
        await publish({"event": "done"})

    async def _dispatch(self, req: RelayRequest) -> ExecutionResult:
        kind = req.kind
        args = req.args

        if kind == "query":
            query = req.text.strip()
            if not query:
                return ExecutionResult.failed("Empty query")
            logger.info("Query from %s: %s", req.user_id, query[:100])
            return await self.executor.execute_query(query, req.user_id)

        if kind == "clear":
            await self.executor.clear_session(req.user_id)
            return ExecutionResult.ok(CLEARED_MESSAGE)

        if kind == "sessions":
            s = self.session_manager.stats()
            return ExecutionResult.ok(f"💬 Sessions: {s.total_sessions}\n📝 Messages: {s.total_messages}")

        if kind == "stats":
            return ExecutionResult.ok(await self.tools.system_stats())

        if kind == "logs":
            log_file = _str_arg(args, 0, "")
            if not log_file:
                return ExecutionResult.failed("Usage: logs <file> [lines]")
            lines = _int_arg(args, 1, DEFAULT_LOG_LINES)
            return ExecutionResult.ok(await self.tools.training_logs(log_file, lines))

        if kind == "tmux":
            session = _str_arg(args, 0, "0")
            lines = _int_arg(args, 1, DEFAULT_LOG_LINES)
            return ExecutionResult.ok(await self.tools.tmux_logs(session, lines))

        if kind == "processes":
            name = _str_arg(args, 0, "python")
            return ExecutionResult.ok(await self.tools.check_processes(name))

        return ExecutionResult.failed(f"Unsupported request kind: {kind}")
