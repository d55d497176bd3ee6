from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class ProcessResult:
    returncode: int
    stdout: str
    stderr: str
    duration_ms: int = 0


@dataclass(frozen=True)
class SessionStats:
    total_sessions: int
    total_messages: int
