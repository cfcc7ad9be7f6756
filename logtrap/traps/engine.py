"""TrapEvaluationEngine -- evaluates a team's active traps and funnels matches
to the alert lifecycle manager.

Two entry points:
- ``on_log_entry_ingested(entry)``: PATTERN and FREQUENCY traps of the
  entry's team, evaluated against that entry
- ``on_scheduler_tick(team_id)``: ABSENCE traps of the team, evaluated
  against the trailing window ending now

Traps of one team are evaluated concurrently and independently: a failure
on one trap is logged with its identifiers and never affects its siblings
or the caller.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from logtrap.core.enums import ConditionType, TrapType
from logtrap.core.utils.timeutils import Clock, utcnow
from logtrap.monitoring.alert_manager import format_trigger_message
from logtrap.traps.evaluators import (
    ENTRY_DRIVEN_TYPES,
    ConditionEvaluator,
    build_evaluators,
)
from logtrap.traps.models import EvaluationContext, LogEntry, MatchResult, Trap

if TYPE_CHECKING:
    from logtrap.monitoring.alert_manager import AlertLifecycleManager
    from logtrap.stores.base import LogEntryStore, TrapStore

logger = structlog.get_logger(__name__)


class TrapEvaluationEngine:
    def __init__(
        self,
        trap_store: TrapStore,
        log_store: LogEntryStore,
        lifecycle: AlertLifecycleManager,
        evaluators: dict[ConditionType, ConditionEvaluator] | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.traps = trap_store
        self.log_store = log_store
        self.lifecycle = lifecycle
        self.evaluators = evaluators or build_evaluators()
        self.clock = clock

    async def on_log_entry_ingested(self, entry: LogEntry) -> set[str]:
        """Evaluate the entry's team PATTERN/FREQUENCY traps; return matched trap ids."""
        traps = [
            t
            for t in await self.traps.list_active_traps(entry.team_id)
            if t.trap_type in ENTRY_DRIVEN_TYPES
        ]
        if not traps:
            return set()

        context = EvaluationContext(
            team_id=entry.team_id,
            now=self.clock(),
            log_store=self.log_store,
            entry=entry,
        )
        return await self._evaluate_all(traps, context)

    async def on_scheduler_tick(self, team_id: str) -> set[str]:
        """Evaluate the team's ABSENCE traps; return matched trap ids."""
        traps = [
            t
            for t in await self.traps.list_active_traps(team_id)
            if t.trap_type == TrapType.ABSENCE
        ]
        if not traps:
            return set()

        context = EvaluationContext(
            team_id=team_id, now=self.clock(), log_store=self.log_store
        )
        return await self._evaluate_all(traps, context)

    async def _evaluate_all(
        self, traps: list[Trap], context: EvaluationContext
    ) -> set[str]:
        outcomes = await asyncio.gather(
            *(self._evaluate_trap(trap, context) for trap in traps)
        )
        return {trap.id for trap, matched in zip(traps, outcomes) if matched}

    async def _evaluate_trap(self, trap: Trap, context: EvaluationContext) -> bool:
        entry_id = context.entry.id if context.entry else None
        try:
            evaluator = self.evaluators[trap.condition_type]
            result = await evaluator.evaluate(trap, context)
        except Exception as exc:
            logger.error(
                "trap_evaluation_failed",
                trap_id=trap.id,
                team_id=trap.team_id,
                entry_id=entry_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False

        if not result.matched:
            return False

        logger.info(
            "trap_matched",
            trap_id=trap.id,
            team_id=trap.team_id,
            entry_id=entry_id,
            detail=result.detail,
        )
        try:
            await self.lifecycle.fire(trap.id, self._trigger_message(trap, context, result))
        except Exception as exc:
            logger.error(
                "alert_fire_failed",
                trap_id=trap.id,
                team_id=trap.team_id,
                entry_id=entry_id,
                error=str(exc),
            )
        try:
            await self.traps.record_trigger(trap.id, context.now)
        except Exception as exc:
            logger.warning(
                "trap_trigger_record_failed",
                trap_id=trap.id,
                team_id=trap.team_id,
                error=str(exc),
            )
        return True

    @staticmethod
    def _trigger_message(
        trap: Trap, context: EvaluationContext, result: MatchResult
    ) -> str:
        if trap.trap_type == TrapType.ABSENCE:
            return (
                f"No matching log entries in the last {trap.window_seconds}s "
                f"for trap '{trap.name}'"
            )
        message = format_trigger_message(context.entry)
        if trap.trap_type == TrapType.FREQUENCY:
            return f"Frequency threshold reached ({result.detail}). Latest: {message}"
        return message
