"""Ingestion bridge -- hands ingested entries to the evaluation engine.

``notify`` returns immediately: each entry is evaluated in its own asyncio
task, with ``entry_id``/``team_id`` bound into the structlog context for the
duration of the task. Failures are logged inside the task and never reach
the ingestion caller.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from logtrap.traps.models import LogEntry

if TYPE_CHECKING:
    from logtrap.traps.engine import TrapEvaluationEngine

logger = structlog.get_logger(__name__)


class IngestionBridge:
    """Fire-and-forget hand-off from the log write path to trap evaluation.

    Usage::

        bridge = IngestionBridge(engine)
        await log_store.add(entry)      # durable write first
        bridge.notify(entry)            # never blocks, never raises
        ...
        await bridge.drain()            # on shutdown
    """

    def __init__(self, engine: TrapEvaluationEngine) -> None:
        self.engine = engine
        self._tasks: set[asyncio.Task[set[str]]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def notify(self, entry: LogEntry) -> asyncio.Task[set[str]]:
        """Schedule evaluation of *entry* and return the task.

        Must be called from a running event loop.
        """
        task = asyncio.get_running_loop().create_task(
            self._evaluate(entry), name=f"trap-eval-{entry.id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _evaluate(self, entry: LogEntry) -> set[str]:
        with structlog.contextvars.bound_contextvars(
            entry_id=entry.id, team_id=entry.team_id
        ):
            try:
                matched = await self.engine.on_log_entry_ingested(entry)
            except Exception as exc:
                logger.error(
                    "entry_evaluation_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                return set()
            if matched:
                logger.debug("entry_evaluated", matched_traps=sorted(matched))
            return matched

    async def drain(self) -> None:
        """Wait for every scheduled evaluation, including ones scheduled meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
