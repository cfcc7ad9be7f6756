"""NotificationDispatcher -- concurrent, isolated fan-out to channel adapters."""

from __future__ import annotations

import asyncio

import structlog

from logtrap.core.config import settings
from logtrap.core.enums import ChannelType
from logtrap.monitoring.channels import ChannelAdapter
from logtrap.monitoring.models import Alert, AlertChannel, DeliveryResult
from logtrap.traps.models import Trap

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Deliver one alert to every active channel bound to its trap.

    Each channel is attempted in its own task under its own timeout; a
    failing or hanging channel is logged and reported in the results but
    never raises out of ``dispatch`` and never delays the others beyond
    its timeout.
    """

    def __init__(
        self,
        adapters: dict[ChannelType, ChannelAdapter],
        timeout_seconds: float | None = None,
    ) -> None:
        self.adapters = adapters
        self.timeout_seconds = timeout_seconds or settings.delivery_timeout_seconds

    async def dispatch(
        self, alert: Alert, trap: Trap, channels: list[AlertChannel]
    ) -> list[DeliveryResult]:
        targets = [c for c in channels if self._eligible(c, trap)]
        if not targets:
            logger.debug("no_active_channels", alert_id=alert.id, trap_id=trap.id)
            return []

        results = await asyncio.gather(
            *(self._deliver(alert, trap, channel) for channel in targets)
        )
        logger.info(
            "alert_dispatched",
            alert_id=alert.id,
            trap_id=trap.id,
            delivered=sum(1 for r in results if r.delivered),
            failed=sum(1 for r in results if not r.delivered),
        )
        return list(results)

    def _eligible(self, channel: AlertChannel, trap: Trap) -> bool:
        if not channel.is_active:
            return False
        if channel.team_id != trap.team_id:
            logger.warning(
                "channel_team_mismatch",
                channel_id=channel.id,
                trap_id=trap.id,
            )
            return False
        return True

    async def _deliver(
        self, alert: Alert, trap: Trap, channel: AlertChannel
    ) -> DeliveryResult:
        adapter = self.adapters.get(channel.channel_type)
        try:
            if adapter is None:
                raise LookupError(f"No adapter for {channel.channel_type.value}")
            await asyncio.wait_for(
                adapter.send(alert, trap, channel), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            error = f"timed out after {self.timeout_seconds}s"
        except Exception as exc:
            error = str(exc) or type(exc).__name__
        else:
            return DeliveryResult(channel.id, channel.channel_type, True)

        logger.error(
            "channel_delivery_failed",
            channel_id=channel.id,
            channel_type=channel.channel_type.value,
            alert_id=alert.id,
            error=error,
        )
        return DeliveryResult(channel.id, channel.channel_type, False, error)
