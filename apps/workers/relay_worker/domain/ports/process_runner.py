from __future__ import annotations

from typing import Mapping, Optional, Protocol, Sequence, runtime_checkable

from relay_worker.domain.values import ProcessResult


@runtime_checkable
class ProcessRunner(Protocol):
    """
    Port for running external commands.

    Both methods raise ProcessInvocationError subclasses on timeout,
    non-zero exit, or spawn failure; partial output travels on the exception.
    """

    async def run(
            self,
            argv: Sequence[str],
            *,
            cwd: Optional[str] = None,
            timeout_ms: int,
            env: Optional[Mapping[str, str]] = None,
    ) -> ProcessResult:
        """Run an argument vector without a shell."""
        ...

    async def run_shell(
            self,
            command: str,
            *,
            cwd: Optional[str] = None,
            timeout_ms: int,
    ) -> ProcessResult:
        """Run a command line through /bin/sh (pipelines, redirects)."""
        ...
