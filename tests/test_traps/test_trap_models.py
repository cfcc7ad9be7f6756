"""Tests for the trap domain models.

Verifies:
- LogEntry.value_of field selection (attributes, aliases, structured fields)
- corrupt structured fields raise EvaluationError
- LogLevel ordering used by the minimum-level filter
- Trap derived properties
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from logtrap.core.enums import ConditionType, LogLevel, TrapType
from logtrap.core.exceptions import EvaluationError
from logtrap.traps.models import MatchResult, Trap


class TestValueOf:
    def test_message_and_aliases(self, make_entry):
        entry = make_entry("disk full", source="storage", logger_name="io.disk")
        assert entry.value_of("message") == "disk full"
        assert entry.value_of("source") == "storage"
        assert entry.value_of("serviceName") == "storage"
        assert entry.value_of("service_name") == "storage"
        assert entry.value_of("loggerName") == "io.disk"

    def test_level_returns_enum_value(self, make_entry):
        entry = make_entry(level=LogLevel.WARN)
        assert entry.value_of("level") == "WARN"

    def test_single_structured_field(self, make_entry):
        entry = make_entry(fields={"status": 503, "path": "/health"})
        assert entry.value_of("fields.path") == "/health"
        assert entry.value_of("fields.status") == "503"
        assert entry.value_of("fields.missing") is None

    def test_all_structured_fields_as_json(self, make_entry):
        entry = make_entry(fields={"b": 1, "a": "x"})
        assert entry.value_of("fields") == '{"a": "x", "b": 1}'
        assert entry.value_of("custom_fields") == entry.value_of("fields")

    def test_unknown_field_is_none(self, make_entry):
        assert make_entry().value_of("thread_name") is None

    def test_non_mapping_fields_raise(self, make_entry):
        entry = make_entry(fields=["not", "a", "dict"])  # type: ignore[arg-type]
        with pytest.raises(EvaluationError):
            entry.value_of("fields.status")


class TestLogLevel:
    def test_ordering(self):
        assert LogLevel.ERROR.at_or_above(LogLevel.WARN)
        assert LogLevel.WARN.at_or_above(LogLevel.WARN)
        assert not LogLevel.INFO.at_or_above(LogLevel.WARN)
        assert LogLevel.TRACE.rank == 0
        assert LogLevel.FATAL.rank == 5


class TestTrap:
    def test_window_and_cooldown(self):
        trap = Trap(
            team_id="t",
            name="n",
            trap_type=TrapType.FREQUENCY,
            condition_type=ConditionType.FREQUENCY_THRESHOLD,
            threshold=3,
            window_seconds=60,
            cooldown_seconds=120,
        )
        assert trap.window == timedelta(seconds=60)
        assert trap.cooldown == timedelta(minutes=2)

    def test_default_cooldown_from_settings(self):
        trap = Trap(
            team_id="t",
            name="n",
            trap_type=TrapType.PATTERN,
            condition_type=ConditionType.KEYWORD,
            pattern="boom",
        )
        assert trap.cooldown_seconds == 300
        assert trap.window is None

    def test_match_result_constructors(self):
        assert MatchResult.hit("x") == MatchResult(True, "x")
        assert MatchResult.miss() == MatchResult(False, "")
