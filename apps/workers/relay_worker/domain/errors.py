"""
Process invocation errors
- Raised by the process invoker; converted to ExecutionResult by the executor.
- Every error carries whatever stdout/stderr was captured before it happened.
"""
from __future__ import annotations

from typing import Optional


class ProcessInvocationError(Exception):
    code = "INVOCATION_FAILED"

    def __init__(self, message: str, *, stdout: str = "", stderr: str = "") -> None:
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


class ProcessTimeoutError(ProcessInvocationError):
    code = "TIMEOUT"

    def __init__(self, timeout_ms: int, *, stdout: str = "", stderr: str = "") -> None:
        super().__init__(f"Command timed out after {timeout_ms}ms", stdout=stdout, stderr=stderr)
        self.timeout_ms = timeout_ms


class ProcessExitError(ProcessInvocationError):
    code = "NON_ZERO_EXIT"

    def __init__(self, returncode: int, *, stdout: str = "", stderr: str = "") -> None:
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else None
        message = f"Command failed with exit code {returncode}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, stdout=stdout, stderr=stderr)
        self.returncode = returncode


class ProcessSpawnError(ProcessInvocationError):
    code = "SPAWN_FAILED"

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause
