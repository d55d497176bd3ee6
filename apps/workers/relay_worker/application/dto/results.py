from __future__ import annotations
from typing import Optional

from relay_worker.domain.camel import CamelModel

NO_OUTPUT_MESSAGE = "Command executed successfully (no output)"


class ExecutionResult(CamelModel):
    """
    Outcome of one assistant query or utility command.
    Failures are values, not exceptions: `error` describes what went wrong and
    `output` carries whatever the process printed before failing.
    """
    success: bool
    output: str = ""
    error: Optional[str] = None

    @classmethod
    def ok(cls, output: str) -> "ExecutionResult":
        return cls(success=True, output=output)

    @classmethod
    def failed(cls, error: str, output: str = "") -> "ExecutionResult":
        return cls(success=False, output=output, error=error)
