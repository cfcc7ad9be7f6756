"""Tests for TrapService.

Verifies:
- create validates, enforces the per-team limit and channel ownership
- update re-validates and bumps the version
- toggle / deactivate soft-disable without deleting
- dry-run testing of stored traps and unsaved definitions
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from logtrap.core.enums import ChannelType, ConditionType, LogLevel, TrapType
from logtrap.core.exceptions import NotFoundError, ValidationError
from logtrap.traps.models import Trap
from logtrap.traps.trap_service import TrapService


@pytest.fixture
def service(trap_store, channel_store, log_store, clock) -> TrapService:
    return TrapService(trap_store, channel_store, log_store, clock=clock, max_traps_per_team=3)


def _definition(**overrides) -> Trap:
    values = {
        "team_id": "team-a",
        "name": "errors",
        "trap_type": TrapType.PATTERN,
        "condition_type": ConditionType.REGEX,
        "pattern": "ERROR",
    }
    values.update(overrides)
    return Trap(**values)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_stores_trap(self, service, trap_store, clock):
        trap = await service.create_trap(_definition(), created_by="user-1")
        stored = await trap_store.get(trap.id)
        assert stored.name == "errors"
        assert stored.version == 1
        assert stored.created_by == "user-1"
        assert stored.created_at == clock()

    @pytest.mark.asyncio
    async def test_invalid_definition_rejected(self, service, trap_store):
        with pytest.raises(ValidationError):
            await service.create_trap(_definition(pattern="(bad"))
        assert await trap_store.count_by_team("team-a") == 0

    @pytest.mark.asyncio
    async def test_team_limit(self, service):
        for i in range(3):
            await service.create_trap(_definition(name=f"t{i}"))
        with pytest.raises(ValidationError, match="maximum trap limit"):
            await service.create_trap(_definition(name="t3"))
        # Other teams are unaffected
        await service.create_trap(_definition(team_id="team-b"))

    @pytest.mark.asyncio
    async def test_channels_must_exist_and_belong_to_team(self, service, make_channel):
        foreign = await make_channel(ChannelType.WEBHOOK, team_id="team-b")
        with pytest.raises(ValidationError, match="another team"):
            await service.create_trap(_definition(channel_ids=[foreign.id]))
        with pytest.raises(ValidationError, match="not found"):
            await service.create_trap(_definition(channel_ids=["missing"]))

        own = await make_channel(ChannelType.WEBHOOK)
        trap = await service.create_trap(_definition(channel_ids=[own.id]))
        assert trap.channel_ids == [own.id]


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_bumps_version(self, service, trap_store):
        trap = await service.create_trap(_definition())
        updated = await service.update_trap(trap.id, pattern="FATAL", min_level=LogLevel.WARN)
        assert updated.version == 2
        stored = await trap_store.get(trap.id)
        assert stored.pattern == "FATAL"
        assert stored.min_level == LogLevel.WARN

    @pytest.mark.asyncio
    async def test_update_revalidates(self, service, trap_store):
        trap = await service.create_trap(_definition())
        with pytest.raises(ValidationError):
            await service.update_trap(trap.id, pattern="[oops")
        with pytest.raises(ValidationError):
            await service.update_trap(trap.id, condition_type=ConditionType.ABSENCE)
        assert (await trap_store.get(trap.id)).version == 1

    @pytest.mark.asyncio
    async def test_unknown_attribute(self, service):
        trap = await service.create_trap(_definition())
        with pytest.raises(ValidationError, match="trigger_count"):
            await service.update_trap(trap.id, trigger_count=10)

    @pytest.mark.asyncio
    async def test_missing_trap(self, service):
        with pytest.raises(NotFoundError):
            await service.update_trap("nope", name="x")


class TestToggle:
    @pytest.mark.asyncio
    async def test_toggle_and_deactivate(self, service, trap_store):
        trap = await service.create_trap(_definition())
        assert (await service.toggle_trap(trap.id)).is_active is False
        assert (await service.toggle_trap(trap.id)).is_active is True
        await service.deactivate_trap(trap.id)
        assert await trap_store.list_active_traps("team-a") == []
        assert len(await service.list_traps("team-a")) == 1


class TestDryRun:
    @pytest.mark.asyncio
    async def test_pattern_trap_counts_matches(
        self, service, log_store, make_entry, clock, alert_store
    ):
        trap = await service.create_trap(_definition(pattern="timeout"))
        for i in range(4):
            await log_store.add(
                make_entry(f"upstream timeout #{i}", timestamp=clock() - timedelta(hours=1))
            )
        await log_store.add(make_entry("ok", timestamp=clock() - timedelta(hours=1)))
        await log_store.add(make_entry("old timeout", timestamp=clock() - timedelta(hours=30)))

        result = await service.test_trap(trap.id, hours_back=24)

        assert result.match_count == 4
        assert result.scanned_count == 5
        assert len(result.sample_ids) == 4
        assert result.match_rate == pytest.approx(0.8)
        assert result.window_end - result.window_start == timedelta(hours=24)
        assert await alert_store.list_for_trap(trap.id) == []

    @pytest.mark.asyncio
    async def test_samples_capped(self, service, log_store, make_entry, clock):
        for _ in range(120):
            await log_store.add(make_entry("ERROR", timestamp=clock() - timedelta(minutes=1)))
        result = await service.test_trap_definition(_definition(), hours_back=1)
        assert result.match_count == 120
        assert len(result.sample_ids) == 100

    @pytest.mark.asyncio
    async def test_frequency_definition_counts_qualifying(self, service, log_store, make_entry):
        await log_store.add(make_entry("slow", level=LogLevel.WARN))
        await log_store.add(make_entry("fine", level=LogLevel.DEBUG))
        definition = _definition(
            trap_type=TrapType.FREQUENCY,
            condition_type=ConditionType.FREQUENCY_THRESHOLD,
            pattern=None,
            threshold=10,
            window_seconds=60,
            min_level=LogLevel.INFO,
        )
        result = await service.test_trap_definition(definition, hours_back=1)
        assert result.match_count == 1
        assert result.scanned_count == 2

    @pytest.mark.asyncio
    async def test_invalid_definition_and_hours(self, service):
        with pytest.raises(ValidationError):
            await service.test_trap_definition(_definition(pattern="(x"), hours_back=1)
        with pytest.raises(ValidationError, match="hours_back"):
            await service.test_trap_definition(_definition(), hours_back=0)
