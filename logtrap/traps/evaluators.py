"""Condition evaluators -- one implementation per condition type.

Every evaluator satisfies ``evaluate(trap, context) -> MatchResult``:

- RegexEvaluator: cached compiled pattern searched in the selected entry field
- KeywordEvaluator: case-insensitive substring of the selected entry field
- FrequencyThresholdEvaluator: qualifying entries in ``(now - window, now]``
  reach the threshold
- AbsenceEvaluator: zero qualifying entries in ``(now - window, now]``

An entry *qualifies* for a trap when it passes the trap's source and
minimum-level filters and, for FREQUENCY/ABSENCE traps with a pattern, the
pattern matches the selected field. The engine picks the evaluator via
``trap.condition_type``; evaluators never fire alerts themselves.
"""

from __future__ import annotations

import abc
import re
from typing import ClassVar

import structlog

from logtrap.core.config import settings
from logtrap.core.enums import ConditionType, TrapType
from logtrap.core.exceptions import EvaluationError
from logtrap.traps.models import EvaluationContext, LogEntry, MatchResult, Trap

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Compiled pattern cache
# ---------------------------------------------------------------------------
class PatternCache:
    """Compiled regex cache keyed by ``(trap_id, version)``.

    A trap update bumps its version, so stale patterns are never reused.
    The cache is cleared wholesale once it reaches ``max_size`` entries.
    """

    def __init__(self, max_size: int | None = None) -> None:
        self.max_size = max_size or settings.max_pattern_cache_size
        self._patterns: dict[tuple[str, int], re.Pattern[str]] = {}

    def __len__(self) -> int:
        return len(self._patterns)

    def get(self, trap: Trap) -> re.Pattern[str]:
        """Return the compiled pattern of *trap*.

        Raises:
            EvaluationError: If the stored pattern does not compile.
        """
        key = (trap.id, trap.version)
        compiled = self._patterns.get(key)
        if compiled is not None:
            return compiled

        if trap.pattern is None:
            raise EvaluationError(f"Trap {trap.id} has no pattern")
        try:
            compiled = re.compile(trap.pattern)
        except re.error as exc:
            raise EvaluationError(
                f"Trap {trap.id}: stored pattern does not compile: {exc}"
            ) from exc

        if len(self._patterns) >= self.max_size:
            self._patterns.clear()
            logger.info("pattern_cache_cleared", max_size=self.max_size)
        self._patterns[key] = compiled
        return compiled


def passes_filters(trap: Trap, entry: LogEntry) -> bool:
    """Source and minimum-level filters of *trap* applied to *entry*."""
    if trap.source_filter and entry.source != trap.source_filter:
        return False
    if trap.min_level is not None and not entry.level.at_or_above(trap.min_level):
        return False
    return True


def entry_qualifies(trap: Trap, entry: LogEntry, patterns: PatternCache) -> bool:
    """True if *entry* counts towards a FREQUENCY or ABSENCE trap."""
    if not passes_filters(trap, entry):
        return False
    if not trap.pattern:
        return True
    value = entry.value_of(trap.field_name)
    return value is not None and patterns.get(trap).search(value) is not None


async def count_qualifying(
    trap: Trap, context: EvaluationContext, patterns: PatternCache
) -> int:
    """Count qualifying entries in the trailing window ending at ``context.now``.

    Without a pattern the count is delegated to the store; with one, the
    whole window is paged through in ``max_query_results`` batches and
    filtered here. A count is never truncated.
    """
    if trap.window is None:
        raise EvaluationError(f"Trap {trap.id} has no window")
    end = context.now
    start = end - trap.window

    if not trap.pattern:
        return await context.log_store.count_entries(
            context.team_id,
            start,
            end,
            source=trap.source_filter,
            min_level=trap.min_level,
        )

    batch_size = settings.max_query_results
    count = 0
    offset = 0
    while True:
        batch = await context.log_store.list_entries(
            context.team_id,
            start,
            end,
            source=trap.source_filter,
            min_level=trap.min_level,
            limit=batch_size,
            offset=offset,
        )
        count += sum(1 for e in batch if entry_qualifies(trap, e, patterns))
        if len(batch) < batch_size:
            return count
        offset += batch_size


# ---------------------------------------------------------------------------
# Evaluators
# ---------------------------------------------------------------------------
class ConditionEvaluator(abc.ABC):
    """Decides whether one trap's condition is currently satisfied."""

    condition_type: ClassVar[ConditionType]

    def __init__(self, patterns: PatternCache) -> None:
        self.patterns = patterns

    @abc.abstractmethod
    async def evaluate(self, trap: Trap, context: EvaluationContext) -> MatchResult:
        """Evaluate *trap* in *context*.

        Raises:
            EvaluationError: On corrupt input (caught per trap by the engine).
        """

    @staticmethod
    def _require_entry(trap: Trap, context: EvaluationContext) -> LogEntry:
        if context.entry is None:
            raise EvaluationError(
                f"Trap {trap.id}: {trap.condition_type.value} needs a log entry"
            )
        return context.entry


class RegexEvaluator(ConditionEvaluator):
    condition_type = ConditionType.REGEX

    async def evaluate(self, trap: Trap, context: EvaluationContext) -> MatchResult:
        entry = self._require_entry(trap, context)
        if not passes_filters(trap, entry):
            return MatchResult.miss("filtered")
        value = entry.value_of(trap.field_name)
        if value is None:
            return MatchResult.miss(f"field {trap.field_name} absent")
        match = self.patterns.get(trap).search(value)
        if match is None:
            return MatchResult.miss()
        return MatchResult.hit(f"{trap.field_name} matched /{trap.pattern}/")


class KeywordEvaluator(ConditionEvaluator):
    condition_type = ConditionType.KEYWORD

    async def evaluate(self, trap: Trap, context: EvaluationContext) -> MatchResult:
        entry = self._require_entry(trap, context)
        if not passes_filters(trap, entry):
            return MatchResult.miss("filtered")
        value = entry.value_of(trap.field_name)
        if value is None or not trap.pattern:
            return MatchResult.miss(f"field {trap.field_name} absent")
        if trap.pattern.lower() not in value.lower():
            return MatchResult.miss()
        return MatchResult.hit(f"{trap.field_name} contains {trap.pattern!r}")


class FrequencyThresholdEvaluator(ConditionEvaluator):
    """Matches when qualifying entries in the trailing window reach the threshold.

    On the per-entry path the triggering entry must itself qualify, so an
    unrelated entry never fires a trap whose window happens to be full.
    """

    condition_type = ConditionType.FREQUENCY_THRESHOLD

    async def evaluate(self, trap: Trap, context: EvaluationContext) -> MatchResult:
        if trap.threshold is None:
            raise EvaluationError(f"Trap {trap.id} has no threshold")
        if context.entry is not None and not entry_qualifies(
            trap, context.entry, self.patterns
        ):
            return MatchResult.miss("entry does not qualify")

        count = await count_qualifying(trap, context, self.patterns)
        detail = f"{count} entries in last {trap.window_seconds}s (threshold {trap.threshold})"
        if count >= trap.threshold:
            return MatchResult.hit(detail)
        return MatchResult.miss(detail)


class AbsenceEvaluator(ConditionEvaluator):
    condition_type = ConditionType.ABSENCE

    async def evaluate(self, trap: Trap, context: EvaluationContext) -> MatchResult:
        count = await count_qualifying(trap, context, self.patterns)
        if count:
            return MatchResult.miss(f"{count} entries in last {trap.window_seconds}s")
        return MatchResult.hit(f"no qualifying entries in last {trap.window_seconds}s")


_EVALUATOR_CLASSES: tuple[type[ConditionEvaluator], ...] = (
    RegexEvaluator,
    KeywordEvaluator,
    FrequencyThresholdEvaluator,
    AbsenceEvaluator,
)


def build_evaluators(
    patterns: PatternCache | None = None,
) -> dict[ConditionType, ConditionEvaluator]:
    """One evaluator per condition type, sharing a single pattern cache."""
    if patterns is None:
        patterns = PatternCache()
    return {cls.condition_type: cls(patterns) for cls in _EVALUATOR_CLASSES}


# Trap types evaluated per ingested entry; ABSENCE runs on scheduler ticks
ENTRY_DRIVEN_TYPES: tuple[TrapType, ...] = (TrapType.PATTERN, TrapType.FREQUENCY)
