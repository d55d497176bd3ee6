from __future__ import annotations

import asyncio

from conftest import FakeRunner

from relay_worker.application.services.system_tools import (
    CPU_QUERY,
    GPU_QUERY,
    MEMORY_QUERY,
    SystemTools,
)
from relay_worker.domain.errors import ProcessExitError, ProcessTimeoutError
from relay_worker.domain.values import ProcessResult


class CommandRunner(FakeRunner):
    """Answers shell commands from a table instead of a queue, so gather order does not matter."""

    def __init__(self, table):
        super().__init__()
        self.table = table

    async def run_shell(self, command, *, cwd=None, timeout_ms):
        self.calls.append({"command": command, "cwd": cwd, "timeout_ms": timeout_ms})
        outcome = self.table[command]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def test_run_command_prefers_stdout_then_stderr():
    runner = FakeRunner([
        ProcessResult(0, "out\n", "err\n"),
        ProcessResult(0, "", "err only\n"),
        ProcessResult(0, "", ""),
    ])
    tools = SystemTools(runner, work_dir="/srv", timeout_ms=1234)

    async def scenario():
        return [await tools.run_command("x") for _ in range(3)]

    first, second, third = asyncio.run(scenario())

    assert first.output == "out\n"
    assert second.output == "err only\n"
    assert third.output == "Command executed successfully"
    assert runner.calls[0] == {"command": "x", "cwd": "/srv", "timeout_ms": 1234}


def test_run_command_failure_is_a_result():
    runner = FakeRunner([ProcessExitError(2, stdout="partial", stderr="boom")])

    result = asyncio.run(SystemTools(runner, work_dir="/srv").run_command("x"))

    assert result.success is False
    assert result.output == "partial"
    assert "boom" in result.error


def test_system_stats_report():
    runner = CommandRunner({
        GPU_QUERY: ProcessResult(0, "0, A100, 87, 30000, 40960\n", ""),
        CPU_QUERY: ProcessResult(0, "CPU Usage: 12.5%\n", ""),
        MEMORY_QUERY: ProcessTimeoutError(60_000),
    })

    report = asyncio.run(SystemTools(runner, work_dir="/srv").system_stats())

    assert report.splitlines() == [
        "📊 System Stats:",
        "",
        "🎮 GPU:",
        "0, A100, 87, 30000, 40960",
        "",
        "💻 CPU Usage: 12.5%",
        "🧠 Memory: N/A",
    ]


def test_training_logs_escapes_the_file_name():
    runner = FakeRunner([ProcessResult(0, "epoch 3 loss 0.2\n", "")])

    text = asyncio.run(SystemTools(runner, work_dir="/srv").training_logs('run "$1".log', 20))

    assert text == "epoch 3 loss 0.2"
    assert runner.calls[0]["command"] == 'tail -n 20 "run \\"\\$1\\".log"'


def test_training_logs_fallback():
    runner = FakeRunner([ProcessExitError(1, stderr="tail: cannot open")])

    text = asyncio.run(SystemTools(runner, work_dir="/srv").training_logs("missing.log"))

    assert text == "No logs found"


def test_tmux_logs():
    runner = FakeRunner([
        ProcessResult(0, "step 100\n", ""),
        ProcessResult(0, "   \n", ""),
        ProcessExitError(1, stderr="can't find session: train"),
    ])
    tools = SystemTools(runner, work_dir="/srv")

    async def scenario():
        return (
            await tools.tmux_logs("0", 10),
            await tools.tmux_logs(),
            await tools.tmux_logs("train"),
        )

    captured, empty, missing = asyncio.run(scenario())

    assert captured == "step 100"
    assert runner.calls[0]["command"] == 'tmux capture-pane -p -t "0" -S -10'
    assert empty == "No output captured"
    assert missing.startswith('❌ Could not read tmux session "train"')
    assert "can't find session" in missing


def test_check_processes():
    runner = FakeRunner([ProcessResult(0, "No processes found\n", "")])

    text = asyncio.run(SystemTools(runner, work_dir="/srv").check_processes("train.py"))

    assert text == "No processes found\n"
    assert runner.calls[0]["command"].startswith('ps aux | grep "train.py" | grep -v grep')
