from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

# Make the autohub package importable when running the tests locally
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autohub.core.async_queue import AsyncQueue, create_async_queue  # noqa: E402


def test_tasks_run_one_at_a_time_in_submission_order():
    events: list[str] = []

    async def step(name: str, delay: float) -> str:
        events.append(f"start:{name}")
        await asyncio.sleep(delay)
        events.append(f"end:{name}")
        return name

    async def scenario():
        queue = AsyncQueue()
        return await asyncio.gather(
            queue.run(lambda: step("a", 0.03)),
            queue.run(lambda: step("b", 0)),
            queue.run(lambda: step("c", 0.01)),
        )

    results = asyncio.run(scenario())

    assert results == ["a", "b", "c"]
    assert events == ["start:a", "end:a", "start:b", "end:b", "start:c", "end:c"]


def test_failing_task_only_fails_its_own_caller():
    async def boom():
        raise ValueError("broken")

    async def ok():
        return 42

    async def scenario():
        run = create_async_queue()
        return await asyncio.gather(run(boom), run(ok), return_exceptions=True)

    failed, value = asyncio.run(scenario())

    assert isinstance(failed, ValueError)
    assert value == 42


def test_queue_keeps_working_after_a_failure():
    async def scenario():
        queue = AsyncQueue()

        async def boom():
            raise RuntimeError("first")

        with pytest.raises(RuntimeError):
            await queue.run(boom)

        async def later():
            return "later"

        return await queue.run(later), queue.pending

    value, pending = asyncio.run(scenario())

    assert value == "later"
    assert pending == 0


def test_pending_counts_running_and_waiting_tasks():
    seen: list[int] = []

    async def scenario():
        queue = AsyncQueue()

        async def first():
            await asyncio.sleep(0.02)
            seen.append(queue.pending)

        async def other():
            return None

        await asyncio.gather(queue.run(first), queue.run(other), queue.run(other))
        return queue.pending

    remaining = asyncio.run(scenario())

    assert seen == [3]
    assert remaining == 0
