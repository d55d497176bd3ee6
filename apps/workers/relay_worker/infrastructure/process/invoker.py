"""
Process Invoker
- Runs external commands (argv or /bin/sh pipelines) with a working directory and a hard timeout.
- Captures stdout/stderr concurrently so partial output survives a timeout.
- On expiry the whole process group is killed and ProcessTimeoutError is raised.
"""
from __future__ import annotations

import asyncio
import os
import signal
import time
from logging import getLogger
from typing import Mapping, Optional, Sequence

from relay_worker.domain.errors import (
    ProcessExitError,
    ProcessSpawnError,
    ProcessTimeoutError,
)
from relay_worker.domain.values import ProcessResult

logger = getLogger(__name__)

DEFAULT_PATH = "/usr/local/bin:/usr/bin:/bin"
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024  # 10MB per stream
_READ_CHUNK = 64 * 1024
# Grace period for pipe readers after the child has been killed
_DRAIN_TIMEOUT_S = 2.0


def build_env(
        overrides: Optional[Mapping[str, str]] = None,
        *,
        default_path: str = DEFAULT_PATH,
) -> dict[str, str]:
    """Inherited environment plus overrides, with a guaranteed non-empty PATH."""
    env = dict(os.environ)
    if overrides:
        env.update(overrides)
    if not env.get("PATH", "").strip():
        env["PATH"] = default_path
    return env


def _preview(argv: Sequence[str] | str, limit: int = 100) -> str:
    text = argv if isinstance(argv, str) else " ".join(argv)
    return text if len(text) <= limit else text[:limit] + "..."


class _BoundedReader:
    """Drain a pipe to EOF, keeping at most `limit` bytes."""

    def __init__(self, stream: Optional[asyncio.StreamReader], limit: int) -> None:
        self.stream = stream
        self.limit = limit
        self.buf = bytearray()
        self.truncated = False

    async def drain(self) -> None:
        if self.stream is None:
            return
        while True:
            chunk = await self.stream.read(_READ_CHUNK)
            if not chunk:
                return
            room = self.limit - len(self.buf)
            if room > 0:
                self.buf.extend(chunk[:room])
            if len(chunk) > room:
                self.truncated = True

    def text(self) -> str:
        return self.buf.decode("utf-8", errors="replace")


class ProcessInvoker:
    """
    Asyncio subprocess runner shared by assistant queries and utility commands.

    - `run` spawns an argument vector directly (no shell, no escaping needed).
    - `run_shell` goes through /bin/sh for pipelines and redirects.
    - Children run in their own session so a timeout can kill grandchildren too.
    """

    def __init__(
            self,
            *,
            default_path: str = DEFAULT_PATH,
            max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
            env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.default_path = default_path
        self.max_output_bytes = max_output_bytes
        self.env = dict(env or {})

    async def run(
            self,
            argv: Sequence[str],
            *,
            cwd: Optional[str] = None,
            timeout_ms: int,
            env: Optional[Mapping[str, str]] = None,
    ) -> ProcessResult:
        if not argv:
            raise ProcessSpawnError("Empty command")
        merged = {**self.env, **(env or {})}
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                env=build_env(merged, default_path=self.default_path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise ProcessSpawnError(f"Failed to start {argv[0]}: {e}", cause=e) from e
        return await self._collect(proc, _preview(argv), timeout_ms)

    async def run_shell(
            self,
            command: str,
            *,
            cwd: Optional[str] = None,
            timeout_ms: int,
    ) -> ProcessResult:
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                cwd=cwd,
                env=build_env(self.env, default_path=self.default_path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise ProcessSpawnError(f"Failed to start shell command: {e}", cause=e) from e
        return await self._collect(proc, _preview(command), timeout_ms)

    async def _collect(
            self,
            proc: asyncio.subprocess.Process,
            preview: str,
            timeout_ms: int,
    ) -> ProcessResult:
        started = time.monotonic()
        out = _BoundedReader(proc.stdout, self.max_output_bytes)
        err = _BoundedReader(proc.stderr, self.max_output_bytes)
        readers = asyncio.gather(out.drain(), err.drain())

        try:
            await asyncio.wait_for(proc.wait(), timeout=max(timeout_ms, 1) / 1000)
        except asyncio.TimeoutError:
            logger.warning("⏱ timeout after %sms, killing pid=%s: %s", timeout_ms, proc.pid, preview)
            self._kill(proc)
            await proc.wait()
            await self._finish_readers(readers)
            raise ProcessTimeoutError(timeout_ms, stdout=out.text(), stderr=err.text())
        except asyncio.CancelledError:
            self._kill(proc)
            readers.cancel()
            raise

        await self._finish_readers(readers)
        duration_ms = int((time.monotonic() - started) * 1000)
        if out.truncated or err.truncated:
            logger.warning("output truncated to %s bytes: %s", self.max_output_bytes, preview)

        if proc.returncode != 0:
            raise ProcessExitError(proc.returncode, stdout=out.text(), stderr=err.text())

        logger.debug("✅ exit 0 in %sms: %s", duration_ms, preview)
        return ProcessResult(
            returncode=0,
            stdout=out.text(),
            stderr=err.text(),
            duration_ms=duration_ms,
        )

    @staticmethod
    async def _finish_readers(readers: asyncio.Future) -> None:
        try:
            await asyncio.wait_for(readers, timeout=_DRAIN_TIMEOUT_S)
        except asyncio.TimeoutError:
            # A detached grandchild still holds the pipe; keep what we have
            logger.debug("pipe drain timed out; returning partial output")

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            try:
                proc.kill()
            except ProcessLookupError:
                pass
