"""Shared enumerations used across traps, alerts and channels.

All enums use the (str, Enum) mixin pattern so their values are
serializable strings, compatible with database storage and JSON output.
"""

from enum import Enum


class TrapType(str, Enum):
    """How a trap is triggered."""

    PATTERN = "PATTERN"
    FREQUENCY = "FREQUENCY"
    ABSENCE = "ABSENCE"


class ConditionType(str, Enum):
    """Matching strategy of a trap condition."""

    REGEX = "REGEX"
    KEYWORD = "KEYWORD"
    FREQUENCY_THRESHOLD = "FREQUENCY_THRESHOLD"
    ABSENCE = "ABSENCE"


# Condition types each trap type accepts
COMPATIBLE_CONDITIONS: dict[TrapType, frozenset[ConditionType]] = {
    TrapType.PATTERN: frozenset({ConditionType.REGEX, ConditionType.KEYWORD}),
    TrapType.FREQUENCY: frozenset({ConditionType.FREQUENCY_THRESHOLD}),
    TrapType.ABSENCE: frozenset({ConditionType.ABSENCE}),
}


class AlertSeverity(str, Enum):
    """Severity stamped on alerts fired by a trap."""

    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AlertStatus(str, Enum):
    """Lifecycle states of an alert.

    FIRED -> ACKNOWLEDGED -> RESOLVED, or FIRED -> RESOLVED directly.
    RESOLVED is terminal for that alert instance.
    """

    FIRED = "FIRED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"


OPEN_ALERT_STATUSES: frozenset[AlertStatus] = frozenset(
    {AlertStatus.FIRED, AlertStatus.ACKNOWLEDGED}
)


class ChannelType(str, Enum):
    """Notification channel kinds."""

    EMAIL = "EMAIL"
    WEBHOOK = "WEBHOOK"
    TEAMS = "TEAMS"
    SLACK = "SLACK"


class LogLevel(str, Enum):
    """Log severity levels, ordered from most verbose to most severe."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def at_or_above(self, other: "LogLevel") -> bool:
        return self.rank >= other.rank


_LEVEL_ORDER = list(LogLevel)
