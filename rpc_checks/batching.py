from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Sequence

import structlog


logger = structlog.get_logger(__name__)

TaskFn = Callable[[], Awaitable[Any]]


async def batch_call(
    tasks: Sequence[TaskFn],
    concurrency: int,
    *,
    task_timeout: float | None = None,
) -> list[Any]:
    """
    Run zero-argument coroutine functions with at most `concurrency` in flight.

    results[i] always belongs to tasks[i], whatever the completion order. A task that
    raises (or exceeds `task_timeout`) yields None in its slot and does not disturb the
    other tasks.
    """
    total = len(tasks)
    if total == 0:
        return []

    results: list[Any] = [None] * total
    # Shared claim cursor. Advancing it never suspends, so on a single event loop each
    # index is handed to exactly one worker.
    cursor = iter(range(total))

    async def _worker() -> None:
        for idx in cursor:
            try:
                if task_timeout is None:
                    results[idx] = await tasks[idx]()
                else:
                    results[idx] = await asyncio.wait_for(tasks[idx](), timeout=float(task_timeout))
            except Exception as exc:
                logger.debug("batch_task_failed", index=idx, error=f"{type(exc).__name__}: {exc}")
                results[idx] = None

    workers = max(1, min(int(concurrency), total))
    await asyncio.gather(*(_worker() for _ in range(workers)))
    return results
