"""
System tools
- Quick machine checks for a remote training box: GPU/CPU/memory, log tails, tmux panes, process lists.
- Stateless: they share the process runner with the assistant but never touch sessions.
"""
from __future__ import annotations

import asyncio
from logging import getLogger

from relay_worker.application.dto.results import ExecutionResult
from relay_worker.domain.errors import ProcessInvocationError
from relay_worker.domain.ports.process_runner import ProcessRunner
from relay_worker.application.utils.shell import escape_shell_text

logger = getLogger(__name__)

GPU_QUERY = (
    "nvidia-smi --query-gpu=index,name,utilization.gpu,memory.used,memory.total "
    "--format=csv,noheader,nounits 2>/dev/null || echo \"No GPU found\""
)
CPU_QUERY = (
    "top -bn1 | grep \"Cpu(s)\" | sed \"s/.*, *\\([0-9.]*\\)%* id.*/\\1/\" "
    "| awk '{print \"CPU Usage: \" 100 - $1\"%\"}'"
)
MEMORY_QUERY = "free -h | awk '/^Mem:/ {print \"Memory: \" $3 \"/\" $2}'"


class SystemTools:
    def __init__(self, runner: ProcessRunner, *, work_dir: str, timeout_ms: int = 60_000):
        self._runner = runner
        self._work_dir = work_dir
        self._timeout_ms = timeout_ms

    async def run_command(self, command: str) -> ExecutionResult:
        logger.info("Executing shell command in %s: %s", self._work_dir, command)
        try:
            result = await self._runner.run_shell(command, cwd=self._work_dir, timeout_ms=self._timeout_ms)
        except ProcessInvocationError as e:
            logger.error("❌ Shell execution error (%s): %s", e.code, e)
            return ExecutionResult.failed(str(e), output=e.stdout)
        return ExecutionResult.ok(result.stdout or result.stderr or "Command executed successfully")

    async def system_stats(self) -> str:
        gpu, cpu, mem = await asyncio.gather(
            self.run_command(GPU_QUERY),
            self.run_command(CPU_QUERY),
            self.run_command(MEMORY_QUERY),
        )
        return "\n".join([
            "📊 System Stats:",
            "",
            "🎮 GPU:",
            _text_or(gpu, "N/A"),
            "",
            "💻 " + _text_or(cpu, "CPU: N/A"),
            "🧠 " + _text_or(mem, "Memory: N/A"),
        ])

    async def training_logs(self, log_file: str, lines: int = 50) -> str:
        result = await self.run_command(f'tail -n {int(lines)} "{escape_shell_text(log_file)}"')
        return _text_or(result, "No logs found")

    async def tmux_logs(self, session: str = "0", lines: int = 50) -> str:
        result = await self.run_command(
            f'tmux capture-pane -p -t "{escape_shell_text(session)}" -S -{int(lines)}'
        )
        if not result.success:
            return f"❌ Could not read tmux session \"{session}\": {result.error}"
        return _text_or(result, "No output captured")

    async def check_processes(self, name: str = "python") -> str:
        result = await self.run_command(
            f'ps aux | grep "{escape_shell_text(name)}" | grep -v grep || echo "No processes found"'
        )
        return result.output


def _text_or(result: ExecutionResult, fallback: str) -> str:
    text = result.output.strip()
    return text if result.success and text else fallback
