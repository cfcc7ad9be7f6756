"""Tests for NotificationDispatcher.

Verifies:
- every active channel of the trap's team receives the alert
- one failing channel does not prevent delivery to the others
- a hanging channel is cut off by the per-channel timeout
- inactive and foreign-team channels are skipped
- missing adapters are reported, not raised
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

import pytest

from logtrap.core.enums import AlertSeverity, ChannelType, ConditionType, TrapType
from logtrap.monitoring.dispatcher import NotificationDispatcher
from logtrap.monitoring.models import Alert, AlertChannel
from logtrap.traps.models import Trap


FIRED_AT = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _trap() -> Trap:
    return Trap(
        team_id="team-a",
        name="errors",
        trap_type=TrapType.PATTERN,
        condition_type=ConditionType.REGEX,
        pattern="ERROR",
    )


def _alert(trap: Trap) -> Alert:
    return Alert(
        trap_id=trap.id,
        team_id=trap.team_id,
        severity=AlertSeverity.CRITICAL,
        trigger_message="boom",
        first_fired_at=FIRED_AT,
        last_fired_at=FIRED_AT,
    )


def _channel(channel_type: ChannelType, team_id: str = "team-a", is_active: bool = True):
    return AlertChannel(
        team_id=team_id,
        name=channel_type.value.lower(),
        channel_type=channel_type,
        configuration={},
        is_active=is_active,
    )


class TestDispatch:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_others(self, dispatcher, adapters):
        adapters[ChannelType.TEAMS].fail = True
        trap = _trap()
        alert = _alert(trap)
        channels = [
            _channel(ChannelType.WEBHOOK),
            _channel(ChannelType.TEAMS),
            _channel(ChannelType.SLACK),
        ]

        results = await dispatcher.dispatch(alert, trap, channels)

        by_type = {r.channel_type: r for r in results}
        assert by_type[ChannelType.WEBHOOK].delivered
        assert by_type[ChannelType.SLACK].delivered
        assert not by_type[ChannelType.TEAMS].delivered
        assert "unreachable" in by_type[ChannelType.TEAMS].error
        assert adapters[ChannelType.WEBHOOK].sent == [(alert.id, channels[0].id)]
        assert adapters[ChannelType.SLACK].sent == [(alert.id, channels[2].id)]

    @pytest.mark.asyncio
    async def test_hanging_channel_times_out(self, dispatcher, adapters):
        adapters[ChannelType.EMAIL].hang = True
        trap = _trap()
        channels = [_channel(ChannelType.EMAIL), _channel(ChannelType.WEBHOOK)]

        started = time.monotonic()
        results = await dispatcher.dispatch(_alert(trap), trap, channels)
        elapsed = time.monotonic() - started

        assert elapsed < 2.0
        email, webhook = results
        assert not email.delivered
        assert "timed out" in email.error
        assert webhook.delivered

    @pytest.mark.asyncio
    async def test_inactive_and_foreign_channels_skipped(self, dispatcher, adapters):
        trap = _trap()
        channels = [
            _channel(ChannelType.WEBHOOK, is_active=False),
            _channel(ChannelType.SLACK, team_id="team-b"),
        ]
        assert await dispatcher.dispatch(_alert(trap), trap, channels) == []
        assert adapters[ChannelType.WEBHOOK].sent == []
        assert adapters[ChannelType.SLACK].sent == []

    @pytest.mark.asyncio
    async def test_missing_adapter_reported(self, adapters):
        dispatcher = NotificationDispatcher(
            {ChannelType.WEBHOOK: adapters[ChannelType.WEBHOOK]},
            timeout_seconds=0.2,
        )
        trap = _trap()
        results = await dispatcher.dispatch(
            _alert(trap), trap, [_channel(ChannelType.SLACK), _channel(ChannelType.WEBHOOK)]
        )
        assert [r.delivered for r in results] == [False, True]
        assert "No adapter" in results[0].error

    @pytest.mark.asyncio
    async def test_no_channels(self, dispatcher):
        trap = _trap()
        assert await dispatcher.dispatch(_alert(trap), trap, []) == []
