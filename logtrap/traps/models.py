"""Domain models for trap evaluation.

Plain dataclasses, decoupled from SQLAlchemy sessions: stores translate
between these and the ORM records, evaluators and the engine only ever see
these types.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from logtrap.core.config import settings
from logtrap.core.enums import AlertSeverity, ConditionType, LogLevel, TrapType
from logtrap.core.exceptions import EvaluationError
from logtrap.core.utils.timeutils import utcnow

if TYPE_CHECKING:
    from logtrap.stores.base import LogEntryStore


def new_id() -> str:
    return str(uuid4())


# Field names accepted by ``LogEntry.value_of`` besides ``fields.<key>``
ENTRY_ATTRIBUTE_FIELDS: dict[str, str] = {
    "message": "message",
    "source": "source",
    "service_name": "source",
    "serviceName": "source",
    "logger_name": "logger_name",
    "loggerName": "logger_name",
    "level": "level",
}


@dataclass(frozen=True)
class LogEntry:
    """Normalized, immutable log record as delivered by the ingestion boundary."""

    id: str
    team_id: str
    timestamp: datetime
    level: LogLevel
    message: str
    source: str | None = None
    logger_name: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)

    def value_of(self, field_name: str) -> str | None:
        """Extract the text a condition matches against.

        Supports the entry attributes (``message``, ``source``, ``level``,
        ``logger_name`` and their camelCase aliases), a single structured
        field as ``fields.<key>``, or all structured fields as ``fields``
        (JSON-encoded). Unknown names yield None.

        Raises:
            EvaluationError: If the structured fields are not a mapping or
                cannot be rendered as text.
        """
        attr = ENTRY_ATTRIBUTE_FIELDS.get(field_name)
        if attr == "level":
            return self.level.value
        if attr is not None:
            return getattr(self, attr)

        if field_name in ("fields", "custom_fields", "customFields"):
            self._require_mapping()
            try:
                return json.dumps(self.fields, sort_keys=True, default=str)
            except (TypeError, ValueError) as exc:
                raise EvaluationError(
                    f"Entry {self.id}: structured fields are not serializable: {exc}"
                ) from exc

        if field_name.startswith("fields."):
            self._require_mapping()
            value = self.fields.get(field_name[len("fields."):])
            if value is None:
                return None
            return value if isinstance(value, str) else json.dumps(value, default=str)

        return None

    def _require_mapping(self) -> None:
        if not isinstance(self.fields, dict):
            raise EvaluationError(
                f"Entry {self.id}: structured fields must be a mapping, "
                f"got {type(self.fields).__name__}"
            )


@dataclass
class Trap:
    """A team-scoped monitoring rule with exactly one condition.

    Attributes:
        trap_type: PATTERN, FREQUENCY or ABSENCE.
        condition_type: Must be compatible with ``trap_type``.
        pattern: Regex or keyword for PATTERN traps; optional entry filter for
            FREQUENCY and ABSENCE traps (interpreted as a regex).
        threshold: Entry count for FREQUENCY traps.
        window_seconds: Trailing window for FREQUENCY and ABSENCE traps.
        field_name: Entry field the pattern is matched against.
        source_filter: Only entries from this source qualify.
        min_level: Only entries at or above this level qualify.
        cooldown_seconds: Re-notification suppression interval for the open alert.
        version: Bumped on every definition change (regex cache key).
    """

    team_id: str
    name: str
    trap_type: TrapType
    condition_type: ConditionType
    severity: AlertSeverity = AlertSeverity.WARNING
    pattern: str | None = None
    threshold: int | None = None
    window_seconds: int | None = None
    field_name: str = "message"
    source_filter: str | None = None
    min_level: LogLevel | None = None
    is_active: bool = True
    channel_ids: list[str] = field(default_factory=list)
    cooldown_seconds: int = field(
        default_factory=lambda: settings.default_cooldown_seconds
    )
    description: str | None = None
    id: str = field(default_factory=new_id)
    version: int = 1
    trigger_count: int = 0
    last_triggered_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def window(self) -> timedelta | None:
        if self.window_seconds is None:
            return None
        return timedelta(seconds=self.window_seconds)

    @property
    def cooldown(self) -> timedelta:
        return timedelta(seconds=self.cooldown_seconds)


@dataclass(frozen=True)
class MatchResult:
    """Outcome of evaluating one trap condition."""

    matched: bool
    detail: str = ""

    @classmethod
    def hit(cls, detail: str) -> "MatchResult":
        return cls(True, detail)

    @classmethod
    def miss(cls, detail: str = "") -> "MatchResult":
        return cls(False, detail)


@dataclass(frozen=True)
class EvaluationContext:
    """Everything an evaluator may read.

    ``entry`` is set on the per-entry path and None on scheduler ticks.
    ``now`` is the evaluation instant closing every trailing window.
    """

    team_id: str
    now: datetime
    log_store: "LogEntryStore"
    entry: LogEntry | None = None
