"""ChannelService -- definition-time management of a team's alert channels."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from logtrap.core.config import settings
from logtrap.core.enums import ChannelType
from logtrap.core.exceptions import ChannelInUseError, NotFoundError, ValidationError
from logtrap.core.utils.timeutils import Clock, utcnow
from logtrap.monitoring.models import AlertChannel
from logtrap.traps.validation import validate_channel_config

if TYPE_CHECKING:
    from logtrap.stores.base import ChannelStore, TrapStore

logger = structlog.get_logger(__name__)


def parse_channel_type(value: ChannelType | str) -> ChannelType:
    if isinstance(value, ChannelType):
        return value
    try:
        return ChannelType(str(value).upper())
    except ValueError as exc:
        raise ValidationError(f"Invalid channel type: {value}") from exc


class ChannelService:
    """Create, update, list and delete alert channels.

    Deleting a channel is refused while an active trap references it;
    bindings held by inactive traps are dropped together with the channel.
    """

    def __init__(
        self,
        channel_store: ChannelStore,
        trap_store: TrapStore,
        clock: Clock = utcnow,
        max_channels: int | None = None,
    ) -> None:
        self.channels = channel_store
        self.traps = trap_store
        self.clock = clock
        self.max_channels = max_channels or settings.max_alert_channels

    async def create_channel(
        self,
        team_id: str,
        name: str,
        channel_type: ChannelType | str,
        configuration: dict[str, Any],
        created_by: str | None = None,
    ) -> AlertChannel:
        """Validate and store a new channel.

        Raises:
            ValidationError: Bad name, type or configuration, or the team
                already owns ``max_alert_channels`` channels.
        """
        if not name or not name.strip():
            raise ValidationError("Channel name is required")
        channel_type = parse_channel_type(channel_type)
        validate_channel_config(channel_type, configuration)

        existing = await self.channels.count_by_team(team_id)
        if existing >= self.max_channels:
            raise ValidationError(
                f"Team has reached the maximum of {self.max_channels} alert channels"
            )

        now = self.clock()
        channel = AlertChannel(
            team_id=team_id,
            name=name.strip(),
            channel_type=channel_type,
            configuration=dict(configuration),
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        await self.channels.add(channel)
        logger.info(
            "channel_created",
            channel_id=channel.id,
            team_id=team_id,
            channel_type=channel_type.value,
        )
        return channel

    async def get_channel(self, channel_id: str) -> AlertChannel:
        channel = await self.channels.get(channel_id)
        if channel is None:
            raise NotFoundError(f"Alert channel not found: {channel_id}")
        return channel

    async def list_channels(self, team_id: str) -> list[AlertChannel]:
        return await self.channels.list_by_team(team_id)

    async def update_channel(
        self,
        channel_id: str,
        name: str | None = None,
        configuration: dict[str, Any] | None = None,
        is_active: bool | None = None,
    ) -> AlertChannel:
        """Apply the given changes; a new configuration is re-validated."""
        channel = await self.get_channel(channel_id)
        if name is not None:
            if not name.strip():
                raise ValidationError("Channel name is required")
            channel.name = name.strip()
        if configuration is not None:
            validate_channel_config(channel.channel_type, configuration)
            channel.configuration = dict(configuration)
        if is_active is not None:
            channel.is_active = is_active
        channel.updated_at = self.clock()
        await self.channels.update(channel)
        logger.info("channel_updated", channel_id=channel_id)
        return channel

    async def delete_channel(self, channel_id: str) -> None:
        """Delete a channel that no active trap references.

        Raises:
            NotFoundError: If the channel does not exist.
            ChannelInUseError: If an active trap still references it.
        """
        await self.get_channel(channel_id)
        in_use = await self.traps.traps_referencing_channel(channel_id, active_only=True)
        if in_use:
            names = ", ".join(sorted(t.name for t in in_use))
            raise ChannelInUseError(
                f"Channel {channel_id} is referenced by active traps: {names}"
            )
        await self.channels.delete(channel_id)
        logger.info("channel_deleted", channel_id=channel_id)
