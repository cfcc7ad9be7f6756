"""Tests for ChannelService.

Verifies:
- creation validates name, type and configuration
- per-team channel limit
- updates re-validate configuration
- deletion is refused while an active trap references the channel
- deleting a channel bound only to inactive traps drops the bindings
"""

from __future__ import annotations

import pytest

from logtrap.core.enums import ChannelType
from logtrap.core.exceptions import ChannelInUseError, NotFoundError, ValidationError
from logtrap.monitoring.channel_service import ChannelService, parse_channel_type

WEBHOOK_CONFIG = {"url": "https://hooks.example.com/ops"}


@pytest.fixture
def service(channel_store, trap_store, clock) -> ChannelService:
    return ChannelService(channel_store, trap_store, clock=clock, max_channels=2)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create(self, service, channel_store, clock):
        channel = await service.create_channel(
            "team-a", " ops hook ", "webhook", WEBHOOK_CONFIG, created_by="u1"
        )
        stored = await channel_store.get(channel.id)
        assert stored.name == "ops hook"
        assert stored.channel_type == ChannelType.WEBHOOK
        assert stored.created_at == clock()
        assert stored.is_active

    @pytest.mark.asyncio
    async def test_invalid_inputs(self, service):
        with pytest.raises(ValidationError, match="name"):
            await service.create_channel("team-a", "", ChannelType.WEBHOOK, WEBHOOK_CONFIG)
        with pytest.raises(ValidationError, match="channel type"):
            await service.create_channel("team-a", "x", "PAGER", WEBHOOK_CONFIG)
        with pytest.raises(ValidationError):
            await service.create_channel(
                "team-a", "x", ChannelType.WEBHOOK, {"url": "http://10.0.0.1/hook"}
            )

    @pytest.mark.asyncio
    async def test_channel_limit(self, service):
        for i in range(2):
            await service.create_channel("team-a", f"c{i}", ChannelType.WEBHOOK, WEBHOOK_CONFIG)
        with pytest.raises(ValidationError, match="maximum of 2"):
            await service.create_channel("team-a", "c2", ChannelType.WEBHOOK, WEBHOOK_CONFIG)
        await service.create_channel("team-b", "c0", ChannelType.WEBHOOK, WEBHOOK_CONFIG)


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_fields(self, service, clock):
        channel = await service.create_channel("team-a", "c", ChannelType.WEBHOOK, WEBHOOK_CONFIG)
        clock.advance(60)
        updated = await service.update_channel(
            channel.id,
            name="renamed",
            configuration={"url": "https://hooks.example.com/new"},
            is_active=False,
        )
        assert updated.name == "renamed"
        assert updated.configuration["url"].endswith("/new")
        assert updated.is_active is False
        assert updated.updated_at == clock()

    @pytest.mark.asyncio
    async def test_update_revalidates(self, service):
        channel = await service.create_channel("team-a", "c", ChannelType.WEBHOOK, WEBHOOK_CONFIG)
        with pytest.raises(ValidationError):
            await service.update_channel(channel.id, configuration={"url": "https://localhost/x"})
        assert (await service.get_channel(channel.id)).configuration == WEBHOOK_CONFIG

    @pytest.mark.asyncio
    async def test_missing(self, service):
        with pytest.raises(NotFoundError):
            await service.update_channel("missing", name="x")


class TestDelete:
    @pytest.mark.asyncio
    async def test_refused_while_active_trap_references(self, service, make_trap, channel_store):
        channel = await service.create_channel("team-a", "c", ChannelType.WEBHOOK, WEBHOOK_CONFIG)
        await make_trap(name="payments", channel_ids=[channel.id])

        with pytest.raises(ChannelInUseError, match="payments"):
            await service.delete_channel(channel.id)
        assert await channel_store.get(channel.id) is not None

    @pytest.mark.asyncio
    async def test_inactive_bindings_dropped(self, service, make_trap, trap_store):
        channel = await service.create_channel("team-a", "c", ChannelType.WEBHOOK, WEBHOOK_CONFIG)
        trap = await make_trap(is_active=False, channel_ids=[channel.id])

        await service.delete_channel(channel.id)

        assert (await trap_store.get(trap.id)).channel_ids == []
        with pytest.raises(NotFoundError):
            await service.get_channel(channel.id)

    @pytest.mark.asyncio
    async def test_list(self, service):
        await service.create_channel("team-a", "a", ChannelType.WEBHOOK, WEBHOOK_CONFIG)
        await service.create_channel("team-b", "b", ChannelType.WEBHOOK, WEBHOOK_CONFIG)
        assert [c.name for c in await service.list_channels("team-a")] == ["a"]


def test_parse_channel_type():
    assert parse_channel_type("slack") is ChannelType.SLACK
    assert parse_channel_type(ChannelType.EMAIL) is ChannelType.EMAIL
    with pytest.raises(ValidationError):
        parse_channel_type("sms")
