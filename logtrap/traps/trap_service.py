"""TrapService -- definition-time management of log traps.

Provides:
- create/update with validation, per-team trap limit and channel ownership checks
- soft disable (toggle/deactivate) instead of deletion, preserving alert history
- dry-run testing of a stored trap or an unsaved definition against the last
  N hours of a team's log entries, without firing anything
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import structlog

from logtrap.core.config import settings
from logtrap.core.enums import TrapType
from logtrap.core.exceptions import NotFoundError, ValidationError
from logtrap.core.utils.timeutils import Clock, utcnow
from logtrap.traps.evaluators import PatternCache, build_evaluators, entry_qualifies
from logtrap.traps.models import EvaluationContext, Trap
from logtrap.traps.validation import validate_trap

if TYPE_CHECKING:
    from logtrap.stores.base import ChannelStore, LogEntryStore, TrapStore

logger = structlog.get_logger(__name__)

MAX_SAMPLE_IDS = 100

# Trap attributes ``update_trap`` accepts
UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "trap_type",
        "condition_type",
        "pattern",
        "threshold",
        "window_seconds",
        "field_name",
        "source_filter",
        "min_level",
        "severity",
        "is_active",
        "channel_ids",
        "cooldown_seconds",
    }
)


@dataclass
class TrapTestResult:
    """Outcome of a dry run over historical entries."""

    match_count: int
    scanned_count: int
    window_start: datetime
    window_end: datetime
    sample_ids: list[str] = field(default_factory=list)

    @property
    def match_rate(self) -> float:
        if not self.scanned_count:
            return 0.0
        return self.match_count / self.scanned_count


class TrapService:
    def __init__(
        self,
        trap_store: TrapStore,
        channel_store: ChannelStore,
        log_store: LogEntryStore,
        clock: Clock = utcnow,
        max_traps_per_team: int | None = None,
    ) -> None:
        self.traps = trap_store
        self.channels = channel_store
        self.log_store = log_store
        self.clock = clock
        self.max_traps_per_team = max_traps_per_team or settings.max_traps_per_team
        # Dry runs compile into their own cache so unsaved definitions never
        # crowd out the engine's patterns
        self._evaluators = build_evaluators(PatternCache())

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_trap(self, trap: Trap, created_by: str | None = None) -> Trap:
        """Validate and store a new trap definition.

        Raises:
            ValidationError: Invalid definition, unknown or foreign channel,
                or the team already owns ``max_traps_per_team`` traps.
        """
        validate_trap(trap)
        current = await self.traps.count_by_team(trap.team_id)
        if current >= self.max_traps_per_team:
            raise ValidationError(
                f"Team has reached maximum trap limit ({self.max_traps_per_team})"
            )
        await self._check_channels(trap)

        now = self.clock()
        trap.version = 1
        trap.trigger_count = 0
        trap.last_triggered_at = None
        trap.created_by = created_by or trap.created_by
        trap.created_at = now
        trap.updated_at = now
        await self.traps.add(trap)
        logger.info(
            "trap_created",
            trap_id=trap.id,
            team_id=trap.team_id,
            trap_type=trap.trap_type.value,
        )
        return trap

    async def get_trap(self, trap_id: str) -> Trap:
        trap = await self.traps.get(trap_id)
        if trap is None:
            raise NotFoundError(f"Log trap not found: {trap_id}")
        return trap

    async def list_traps(self, team_id: str) -> list[Trap]:
        return await self.traps.list_traps_by_team(team_id)

    async def update_trap(self, trap_id: str, **changes: Any) -> Trap:
        """Apply *changes* to a stored trap, re-validate and bump its version.

        Raises:
            NotFoundError: If the trap does not exist.
            ValidationError: Unknown attribute or invalid resulting definition.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update trap attributes: {', '.join(sorted(unknown))}")

        trap = await self.get_trap(trap_id)
        updated = dataclasses.replace(trap, **changes)
        validate_trap(updated)
        if "channel_ids" in changes:
            await self._check_channels(updated)

        updated.version = trap.version + 1
        updated.updated_at = self.clock()
        await self.traps.update(updated)
        logger.info("trap_updated", trap_id=trap_id, version=updated.version)
        return updated

    async def toggle_trap(self, trap_id: str) -> Trap:
        trap = await self.get_trap(trap_id)
        return await self._set_active(trap, not trap.is_active)

    async def deactivate_trap(self, trap_id: str) -> Trap:
        trap = await self.get_trap(trap_id)
        return await self._set_active(trap, False)

    async def _set_active(self, trap: Trap, active: bool) -> Trap:
        trap.is_active = active
        trap.updated_at = self.clock()
        await self.traps.update(trap)
        logger.info("trap_toggled", trap_id=trap.id, is_active=active)
        return trap

    async def _check_channels(self, trap: Trap) -> None:
        for channel_id in trap.channel_ids:
            channel = await self.channels.get(channel_id)
            if channel is None:
                raise ValidationError(f"Alert channel not found: {channel_id}")
            if channel.team_id != trap.team_id:
                raise ValidationError(
                    f"Alert channel {channel_id} belongs to another team"
                )

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    async def test_trap(self, trap_id: str, hours_back: int = 24) -> TrapTestResult:
        """Dry-run a stored trap over the last *hours_back* hours."""
        trap = await self.get_trap(trap_id)
        return await self._dry_run(trap, hours_back)

    async def test_trap_definition(self, trap: Trap, hours_back: int = 24) -> TrapTestResult:
        """Validate and dry-run an unsaved trap definition."""
        validate_trap(trap)
        return await self._dry_run(trap, hours_back)

    async def _dry_run(self, trap: Trap, hours_back: int) -> TrapTestResult:
        """Count entries in the look-back period the trap would react to.

        PATTERN traps count entries their condition matches; FREQUENCY and
        ABSENCE traps count the entries that qualify for their window.
        """
        if hours_back < 1:
            raise ValidationError("hours_back must be at least 1")

        end = self.clock()
        start = end - timedelta(hours=hours_back)
        entries = await self.log_store.list_entries(
            trap.team_id, start, end, limit=settings.max_query_results
        )

        evaluator = self._evaluators[trap.condition_type]
        matched_ids: list[str] = []
        for entry in entries:
            if trap.trap_type == TrapType.PATTERN:
                context = EvaluationContext(
                    team_id=trap.team_id, now=end, log_store=self.log_store, entry=entry
                )
                hit = (await evaluator.evaluate(trap, context)).matched
            else:
                hit = entry_qualifies(trap, entry, evaluator.patterns)
            if hit:
                matched_ids.append(entry.id)

        return TrapTestResult(
            match_count=len(matched_ids),
            scanned_count=len(entries),
            window_start=start,
            window_end=end,
            sample_ids=matched_ids[:MAX_SAMPLE_IDS],
        )
