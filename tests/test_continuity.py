from __future__ import annotations

import asyncio
import itertools

from relay_worker.application.continuity import (
    HistoryReplayStrategy,
    SessionResumeStrategy,
    make_strategy,
)
from relay_worker.application.services.session_manager import SessionManager
from relay_worker.settings import ContinuityMode


def _ids():
    counter = itertools.count(1)
    return lambda: f"handle-{next(counter)}"


def test_history_replay_without_history_sends_raw_query(memory_store):
    strategy = HistoryReplayStrategy(SessionManager(memory_store))

    invocation = asyncio.run(strategy.prepare("u", "show GPU usage"))

    assert invocation.prompt == "show GPU usage"
    assert invocation.extra_args == ()


def test_history_replay_prepends_context(memory_store, clock):
    manager = SessionManager(memory_store, clock=clock)
    strategy = HistoryReplayStrategy(manager, context_turns=2)

    async def scenario():
        await manager.append_message("u", "user", "old question")
        await manager.append_message("u", "user", "q1")
        await manager.append_message("u", "assistant", "a1")
        return await strategy.prepare("u", "q2")

    invocation = asyncio.run(scenario())

    assert invocation.prompt == (
        "Previous conversation:\nUser: q1\n\nAssistant: a1\n\nCurrent query:\nq2"
    )


def test_resume_creates_then_resumes_handle(memory_store):
    strategy = SessionResumeStrategy(SessionManager(memory_store), id_factory=_ids())

    async def scenario():
        first = await strategy.prepare("u", "first")
        strategy.commit("u")
        return first, await strategy.prepare("u", "second")

    first, second = asyncio.run(scenario())

    assert first.extra_args == ("--session-id", "handle-1")
    assert first.prompt == "first"
    assert second.extra_args == ("--resume", "handle-1")
    assert second.prompt == "second"
    assert strategy.handle_for("u") == "handle-1"


def test_resume_handles_are_per_user(memory_store):
    strategy = SessionResumeStrategy(SessionManager(memory_store), id_factory=_ids())

    async def scenario():
        await strategy.prepare("alice", "x")
        strategy.commit("alice")
        await strategy.prepare("bob", "y")
        strategy.commit("bob")

    asyncio.run(scenario())
    assert strategy.handle_for("alice") == "handle-1"
    assert strategy.handle_for("bob") == "handle-2"


def test_resume_seeds_only_the_fresh_turn_with_history(memory_store, clock):
    manager = SessionManager(memory_store, clock=clock)
    strategy = SessionResumeStrategy(manager, id_factory=_ids())

    async def scenario():
        # history survived a restart; handles did not
        await manager.append_message("u", "user", "before restart")
        fresh = await strategy.prepare("u", "after restart")
        strategy.commit("u")
        resumed = await strategy.prepare("u", "next")
        return fresh, resumed

    fresh, resumed = asyncio.run(scenario())

    assert fresh.prompt.startswith("Previous conversation:\nUser: before restart")
    assert fresh.prompt.endswith("Current query:\nafter restart")
    assert resumed.prompt == "next"


def test_resume_without_seeding(memory_store, clock):
    manager = SessionManager(memory_store, clock=clock)
    strategy = SessionResumeStrategy(manager, seed_from_history=False, id_factory=_ids())

    async def scenario():
        await manager.append_message("u", "user", "before restart")
        return await strategy.prepare("u", "plain")

    assert asyncio.run(scenario()).prompt == "plain"


def test_forget_returns_user_to_fresh(memory_store):
    strategy = SessionResumeStrategy(SessionManager(memory_store), id_factory=_ids())

    async def scenario():
        await strategy.prepare("u", "one")
        strategy.commit("u")
        strategy.forget("u")
        strategy.forget("u")
        return await strategy.prepare("u", "two")

    invocation = asyncio.run(scenario())
    assert invocation.extra_args == ("--session-id", "handle-2")


def test_make_strategy_selects_by_mode(memory_store):
    manager = SessionManager(memory_store)
    assert isinstance(make_strategy(ContinuityMode.HISTORY, manager), HistoryReplayStrategy)
    assert isinstance(make_strategy(ContinuityMode.RESUME, manager), SessionResumeStrategy)


def test_new_handle_is_pending_until_committed(memory_store):
    strategy = SessionResumeStrategy(SessionManager(memory_store), id_factory=_ids())

    async def scenario():
        first = await strategy.prepare("u", "one")
        pending = strategy.handle_for("u")
        strategy.discard("u")
        return first, pending, await strategy.prepare("u", "two")

    first, pending, retry = asyncio.run(scenario())

    assert first.extra_args == ("--session-id", "handle-1")
    assert pending is None
    assert retry.extra_args == ("--session-id", "handle-2")
    assert strategy.handle_for("u") is None


def test_discard_leaves_a_committed_handle_alone(memory_store):
    strategy = SessionResumeStrategy(SessionManager(memory_store), id_factory=_ids())

    async def scenario():
        await strategy.prepare("u", "one")
        strategy.commit("u")
        resumed = await strategy.prepare("u", "two")
        strategy.discard("u")
        return resumed

    resumed = asyncio.run(scenario())

    assert resumed.extra_args == ("--resume", "handle-1")
    assert strategy.handle_for("u") == "handle-1"
