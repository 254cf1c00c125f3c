"""Tests for the background executor."""

import asyncio
import threading
from typing import Any

import pytest

from treepager.core.workers.executor import BackgroundExecutor
from treepager.core.workers.operations import Progress
from treepager.models.node import WorkerProgress
from tests.unit.fakes import make_records


def _thread_name(_payload: dict[str, Any], progress: Progress | None = None) -> str:
    if progress is not None:
        progress(1, 2)
        progress(2, 2)
    return threading.current_thread().name


@pytest.mark.asyncio
async def test_runs_operation_on_worker_thread() -> None:
    executor = BackgroundExecutor(operations={"where": _thread_name})
    try:
        name = await executor.execute("where", {})
        assert name.startswith("treepager-worker")
        assert executor.is_running
    finally:
        executor.close()
    assert not executor.is_running


@pytest.mark.asyncio
async def test_disabled_executor_runs_inline() -> None:
    executor = BackgroundExecutor(enabled=False, operations={"where": _thread_name})
    name = await executor.execute("where", {})
    assert name == threading.current_thread().name
    assert not executor.is_running


@pytest.mark.asyncio
async def test_progress_is_delivered_on_loop_thread() -> None:
    executor = BackgroundExecutor(operations={"where": _thread_name})
    updates: list[tuple[WorkerProgress, str]] = []
    try:
        await executor.execute(
            "where", {}, lambda p: updates.append((p, threading.current_thread().name))
        )
        await asyncio.sleep(0)
    finally:
        executor.close()

    loop_thread = threading.current_thread().name
    assert [(u.completed, u.total) for u, _ in updates] == [(1, 2), (2, 2)]
    assert all(name == loop_thread for _, name in updates)
    assert updates[-1][0].fraction == 1.0


@pytest.mark.asyncio
async def test_unknown_operation_raises() -> None:
    executor = BackgroundExecutor()
    with pytest.raises(ValueError, match="Unknown background operation"):
        await executor.execute("compile", {})


@pytest.mark.asyncio
async def test_builtin_search_operation() -> None:
    executor = BackgroundExecutor()
    payload = {"records": [r.to_dict() for r in make_records(12)], "query": "item 1"}
    try:
        hits = await executor.execute("search", payload)
    finally:
        executor.close()
    assert {h["id"] for h in hits} == {"n1", "n10", "n11"}


@pytest.mark.asyncio
async def test_pool_shuts_down_when_idle() -> None:
    executor = BackgroundExecutor(idle_timeout=0.01, operations={"where": _thread_name})
    await executor.execute("where", {})
    assert executor.is_running
    await asyncio.sleep(0.05)
    assert not executor.is_running

    # a later call starts a fresh pool
    await executor.execute("where", {})
    assert executor.is_running
    executor.close()


@pytest.mark.asyncio
async def test_falls_back_inline_when_pool_rejects_work() -> None:
    executor = BackgroundExecutor(operations={"where": _thread_name})
    pool = executor._ensure_pool()
    pool.shutdown(wait=True)
    name = await executor.execute("where", {})
    assert name == threading.current_thread().name
