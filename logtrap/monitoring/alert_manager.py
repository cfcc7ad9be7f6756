"""AlertLifecycleManager -- creates, de-duplicates and transitions alerts.

Provides:
- At most one open (FIRED or ACKNOWLEDGED) alert per trap, guarded by a
  per-trap ``asyncio.Lock``
- Cooldown per trap: matches within the cooldown of the open alert bump its
  fire count without re-notifying
- Exactly one dispatch per fresh FIRED alert, performed outside the lock
- External acknowledge/resolve transitions and alert history queries

State machine::

    FIRED -> ACKNOWLEDGED -> RESOLVED
    FIRED -> RESOLVED
    RESOLVED is terminal; the next match creates a new alert.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from logtrap.core.config import settings
from logtrap.core.enums import AlertSeverity, AlertStatus
from logtrap.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from logtrap.core.utils.timeutils import Clock, utcnow
from logtrap.monitoring.models import Alert
from logtrap.traps.models import LogEntry, Trap

if TYPE_CHECKING:
    from logtrap.monitoring.dispatcher import NotificationDispatcher
    from logtrap.stores.base import AlertStore, ChannelStore, TrapStore

logger = structlog.get_logger(__name__)


def format_trigger_message(entry: LogEntry, max_length: int | None = None) -> str:
    """Render ``Log entry [LEVEL] source: message`` with a bounded message."""
    max_length = max_length or settings.alert_message_max_length
    message = entry.message or ""
    if len(message) > max_length:
        message = message[:max_length] + "..."
    return f"Log entry [{entry.level.value}] {entry.source or 'unknown'}: {message}"


class AlertLifecycleManager:
    """Own every mutation of alert state.

    Parameters:
        trap_store: Source of trap severity and cooldown.
        alert_store: Alert persistence.
        channel_store: Resolves the channels bound to a trap for dispatch.
        dispatcher: Delivers notifications for fresh FIRED alerts.
        clock: Returns the current aware UTC time.
    """

    def __init__(
        self,
        trap_store: TrapStore,
        alert_store: AlertStore,
        channel_store: ChannelStore,
        dispatcher: NotificationDispatcher,
        clock: Clock = utcnow,
    ):
        self.traps = trap_store
        self.alerts = alert_store
        self.channels = channel_store
        self.dispatcher = dispatcher
        self.clock = clock
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------

    async def fire(self, trap_id: str, trigger_message: str) -> Alert:
        """Record a match of *trap_id* and return the resulting open alert.

        - No open alert: create a FIRED alert (fire count 1) and notify.
        - Open alert older than the cooldown: re-arm it in place as FIRED
          with fire count 1 and notify.
        - Open alert within the cooldown: bump fire count and last-fired
          time, no notification.

        Raises:
            NotFoundError: If the trap does not exist.
        """
        trap = await self.traps.get(trap_id)
        if trap is None:
            raise NotFoundError(f"Log trap not found: {trap_id}")

        async with self._locks[trap_id]:
            now = self.clock()
            alert = await self.alerts.find_open_for_trap(trap_id)

            if alert is not None and self._in_cooldown(alert, trap, now):
                alert.fire_count += 1
                alert.last_fired_at = now
                await self.alerts.update(alert)
                logger.info(
                    "alert_suppressed",
                    alert_id=alert.id,
                    trap_id=trap_id,
                    fire_count=alert.fire_count,
                )
                return alert

            if alert is not None:
                alert.status = AlertStatus.FIRED
                alert.severity = trap.severity
                alert.trigger_message = trigger_message
                alert.fire_count = 1
                alert.first_fired_at = now
                alert.last_fired_at = now
                alert.acknowledged_by = None
                alert.acknowledged_at = None
                await self.alerts.update(alert)
            else:
                alert = Alert(
                    trap_id=trap_id,
                    team_id=trap.team_id,
                    severity=trap.severity,
                    trigger_message=trigger_message,
                    first_fired_at=now,
                    last_fired_at=now,
                )
                await self.alerts.add(alert)

            logger.info(
                "alert_fired",
                alert_id=alert.id,
                trap_id=trap_id,
                team_id=trap.team_id,
                severity=trap.severity.value,
            )

        await self._notify(alert, trap)
        return alert

    @staticmethod
    def _in_cooldown(alert: Alert, trap: Trap, now: datetime) -> bool:
        return now - alert.last_fired_at < trap.cooldown

    async def _notify(self, alert: Alert, trap: Trap) -> None:
        # Alert state is already recorded; nothing here may raise into fire()
        try:
            channels = await self.channels.list_channels_for_trap(trap.id)
            await self.dispatcher.dispatch(alert, trap, channels)
        except Exception as exc:
            logger.error(
                "alert_dispatch_failed",
                alert_id=alert.id,
                trap_id=trap.id,
                error=str(exc),
            )

    # ------------------------------------------------------------------
    # External transitions
    # ------------------------------------------------------------------

    async def _get_alert(self, alert_id: str) -> Alert:
        alert = await self.alerts.get(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert not found: {alert_id}")
        return alert

    async def acknowledge(self, alert_id: str, user_id: str | None = None) -> Alert:
        """Move an open alert to ACKNOWLEDGED.

        Raises:
            NotFoundError: If the alert does not exist.
            InvalidTransitionError: If the alert is already RESOLVED.
        """
        alert = await self._get_alert(alert_id)
        async with self._locks[alert.trap_id]:
            alert = await self._get_alert(alert_id)
            if alert.status == AlertStatus.RESOLVED:
                raise InvalidTransitionError("Cannot acknowledge a resolved alert")
            alert.status = AlertStatus.ACKNOWLEDGED
            alert.acknowledged_by = user_id
            alert.acknowledged_at = self.clock()
            await self.alerts.update(alert)

        logger.info("alert_acknowledged", alert_id=alert_id, user_id=user_id)
        return alert

    async def resolve(self, alert_id: str, user_id: str | None = None) -> Alert:
        """Move an open alert to RESOLVED, stamping acknowledgement if missing.

        Raises:
            NotFoundError: If the alert does not exist.
            InvalidTransitionError: If the alert is already RESOLVED.
        """
        alert = await self._get_alert(alert_id)
        async with self._locks[alert.trap_id]:
            alert = await self._get_alert(alert_id)
            if alert.status == AlertStatus.RESOLVED:
                raise InvalidTransitionError("Alert is already resolved")
            now = self.clock()
            alert.status = AlertStatus.RESOLVED
            alert.resolved_by = user_id
            alert.resolved_at = now
            if alert.acknowledged_at is None:
                alert.acknowledged_by = user_id
                alert.acknowledged_at = now
            await self.alerts.update(alert)

        logger.info("alert_resolved", alert_id=alert_id, user_id=user_id)
        return alert

    async def update_status(
        self, alert_id: str, status: AlertStatus | str, user_id: str | None = None
    ) -> Alert:
        """Generic external transition to ACKNOWLEDGED or RESOLVED.

        Raises:
            ValidationError: If *status* is not a known alert status.
            InvalidTransitionError: If *status* is FIRED.
        """
        if not isinstance(status, AlertStatus):
            try:
                status = AlertStatus(str(status).upper())
            except ValueError as exc:
                raise ValidationError(f"Invalid alert status: {status}") from exc

        if status == AlertStatus.ACKNOWLEDGED:
            return await self.acknowledge(alert_id, user_id)
        if status == AlertStatus.RESOLVED:
            return await self.resolve(alert_id, user_id)
        raise InvalidTransitionError("Cannot set status back to FIRED")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_alert(self, alert_id: str) -> Alert:
        return await self._get_alert(alert_id)

    async def get_alert_history(
        self,
        team_id: str,
        status: AlertStatus | None = None,
        severity: AlertSeverity | None = None,
        limit: int = 50,
    ) -> list[Alert]:
        """Most recently fired alerts of a team, optionally filtered."""
        return await self.alerts.list_by_team(
            team_id, status=status, severity=severity, limit=limit
        )

    async def get_active_alert_counts(self, team_id: str) -> dict[str, int]:
        """Open alert counts per severity, zero-filled."""
        counts = await self.alerts.count_open_by_severity(team_id)
        return {severity.value: counts.get(severity, 0) for severity in AlertSeverity}
