from __future__ import annotations

from logging import getLogger
from typing import List, Optional

from relay_worker.application.continuity import ContinuityStrategy, Invocation
from relay_worker.application.dto.results import NO_OUTPUT_MESSAGE, ExecutionResult
from relay_worker.application.services.session_manager import SessionManager
from relay_worker.application.utils.locks import KeyedLocks
from relay_worker.application.utils.output_parser import parse_cli_output
from relay_worker.domain.errors import ProcessInvocationError
from relay_worker.domain.ports.process_runner import ProcessRunner
from relay_worker.settings import CliConfig

logger = getLogger(__name__)

_VERSION_TIMEOUT_MS = 15_000


class AssistantExecutor:
    """
    AssistantExecutor
    -----------------
    Runs one chat turn against the assistant CLI.

    Responsibilities:
    - Frame the query through the active continuity strategy
    - Build the argument vector and run it via the process runner
    - Record the user/assistant pair in the session history on success

    Turns for the same user are serialized; different users run concurrently.
    Failures come back as ExecutionResult(success=False) and leave history untouched.
    """

    def __init__(
            self,
            runner: ProcessRunner,
            session_manager: SessionManager,
            strategy: ContinuityStrategy,
            *,
            work_dir: str,
            cli: CliConfig,
            locks: Optional[KeyedLocks] = None,
    ) -> None:
        self._runner = runner
        self._session_manager = session_manager
        self._strategy = strategy
        self._work_dir = work_dir
        self._cli = cli
        self._locks = locks or KeyedLocks()

    def build_command(self, invocation: Invocation) -> List[str]:
        argv = [self._cli.bin or "claude", "-p", invocation.prompt, *invocation.extra_args]
        if self._cli.output_format:
            argv += ["--output-format", self._cli.output_format]
        argv += list(self._cli.extra_args)
        return argv

    async def execute_query(self, query: str, user_id: str) -> ExecutionResult:
        async with self._locks.hold(user_id):
            invocation = await self._strategy.prepare(user_id, query)
            argv = self.build_command(invocation)
            logger.info("Executing in %s: %s", self._work_dir, _preview(argv))

            try:
                result = await self._runner.run(
                    argv,
                    cwd=self._work_dir,
                    timeout_ms=self._cli.timeout_ms or 300_000,
                )
            except ProcessInvocationError as e:
                self._strategy.discard(user_id)
                logger.error("❌ Assistant execution error (%s): %s", e.code, e)
                return ExecutionResult.failed(str(e), output=e.stdout)

            self._strategy.commit(user_id)
            payload = parse_cli_output(result.stdout) if result.stdout.strip() else result.stderr

            # History is the audit trail whichever strategy produced the answer
            await self._session_manager.append_message(user_id, "user", query)
            await self._session_manager.append_message(user_id, "assistant", payload)

            return ExecutionResult.ok(payload or NO_OUTPUT_MESSAGE)

    async def clear_session(self, user_id: str) -> None:
        async with self._locks.hold(user_id):
            self._strategy.forget(user_id)
            await self._session_manager.clear(user_id)

    async def check_cli_availability(self) -> bool:
        try:
            await self._runner.run(
                [self._cli.bin or "claude", "--version"],
                cwd=self._work_dir,
                timeout_ms=_VERSION_TIMEOUT_MS,
            )
        except ProcessInvocationError:
            return False
        return True


def _preview(argv: List[str], limit: int = 100) -> str:
    text = " ".join(argv)
    return text if len(text) <= limit else text[:limit] + "..."
