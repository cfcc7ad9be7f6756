"""AbsenceScheduler -- fixed-cadence sweep driving ABSENCE trap evaluation.

Every tick, each team owning an active ABSENCE trap gets one
``engine.on_scheduler_tick(team_id)`` call. The cadence is
``min(scheduler_tick_seconds, smallest active absence window)`` so no silence
period can elapse between two ticks unnoticed. A team whose previous tick is
still running is skipped for that round; teams never wait on each other.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

from logtrap.core.config import settings
from logtrap.core.enums import TrapType

if TYPE_CHECKING:
    from logtrap.stores.base import TrapStore
    from logtrap.traps.engine import TrapEvaluationEngine

logger = structlog.get_logger(__name__)


class AbsenceScheduler:
    def __init__(
        self,
        engine: TrapEvaluationEngine,
        trap_store: TrapStore,
        tick_seconds: float | None = None,
    ) -> None:
        self.engine = engine
        self.traps = trap_store
        self.tick_seconds = tick_seconds or settings.scheduler_tick_seconds
        self._running: dict[str, asyncio.Task[set[str]]] = {}
        self._loop_task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def effective_interval(self) -> float:
        """Configured tick, shortened to the smallest active absence window."""
        windows = [
            t.window_seconds
            for t in await self.traps.list_active_traps_by_type(TrapType.ABSENCE)
            if t.window_seconds
        ]
        if not windows:
            return self.tick_seconds
        return min(self.tick_seconds, float(min(windows)))

    async def run_once(self) -> dict[str, set[str]]:
        """Run one sweep and wait for it; returns matched trap ids per team."""
        launched = await self._launch_ticks()
        results = await asyncio.gather(*launched.values())
        return dict(zip(launched.keys(), results))

    async def _launch_ticks(self) -> dict[str, asyncio.Task[set[str]]]:
        traps = await self.traps.list_active_traps_by_type(TrapType.ABSENCE)
        launched: dict[str, asyncio.Task[set[str]]] = {}
        for team_id in sorted({t.team_id for t in traps}):
            if team_id in self._running:
                logger.warning("absence_tick_skipped", team_id=team_id)
                continue
            task = asyncio.get_running_loop().create_task(
                self._tick(team_id), name=f"absence-tick-{team_id}"
            )
            self._running[team_id] = task
            task.add_done_callback(lambda _t, team=team_id: self._running.pop(team, None))
            launched[team_id] = task
        return launched

    async def _tick(self, team_id: str) -> set[str]:
        with structlog.contextvars.bound_contextvars(team_id=team_id):
            try:
                return await self.engine.on_scheduler_tick(team_id)
            except Exception as exc:
                logger.error("absence_tick_failed", error=str(exc))
                return set()

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.is_running:
            return
        self._loop_task = asyncio.get_running_loop().create_task(
            self._run(), name="absence-scheduler"
        )
        logger.info("absence_scheduler_started", tick_seconds=self.tick_seconds)

    async def stop(self) -> None:
        """Cancel the loop and wait for in-flight team ticks."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._loop_task
            self._loop_task = None
        if self._running:
            await asyncio.gather(*list(self._running.values()))
        logger.info("absence_scheduler_stopped")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            interval = self.tick_seconds
            try:
                interval = await self.effective_interval()
                await self._launch_ticks()
            except Exception as exc:
                logger.error("absence_sweep_failed", error=str(exc))

            next_tick += interval
            delay = next_tick - loop.time()
            if delay < 0:
                # Fell behind; restart the cadence from now
                next_tick = loop.time()
                delay = 0.0
            await asyncio.sleep(delay)
