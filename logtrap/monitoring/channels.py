"""Channel adapters -- render and deliver alert notifications.

One adapter per channel type:
- EmailChannelAdapter: HTML + plain-text email over SMTP (run in a worker
  thread so the event loop is never blocked)
- WebhookChannelAdapter: generic JSON POST with optional custom headers
- TeamsChannelAdapter: Microsoft Teams MessageCard
- SlackChannelAdapter: Slack Block Kit message

HTTP adapters share one ``httpx.AsyncClient`` and retry transient failures
with exponential backoff + jitter via tenacity. Every adapter raises
DeliveryError when a notification cannot be delivered; isolating that
failure from other channels is the dispatcher's job.
"""

from __future__ import annotations

import abc
import asyncio
import html
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, ClassVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from logtrap.core.config import settings
from logtrap.core.enums import AlertSeverity, ChannelType
from logtrap.core.exceptions import DeliveryError
from logtrap.monitoring.models import Alert, AlertChannel
from logtrap.traps.models import Trap

logger = structlog.get_logger(__name__)

TEAMS_THEME_COLORS: dict[AlertSeverity, str] = {
    AlertSeverity.INFO: "0076D7",
    AlertSeverity.WARNING: "FFA500",
    AlertSeverity.CRITICAL: "FF0000",
}

_EMAIL_COLORS: dict[AlertSeverity, str] = {
    AlertSeverity.INFO: "#0d6efd",
    AlertSeverity.WARNING: "#ffc107",
    AlertSeverity.CRITICAL: "#dc3545",
}

_SLACK_EMOJI: dict[AlertSeverity, str] = {
    AlertSeverity.INFO: ":information_source:",
    AlertSeverity.WARNING: ":warning:",
    AlertSeverity.CRITICAL: ":red_circle:",
}


class ChannelAdapter(abc.ABC):
    """Delivers one alert to one channel of a given type."""

    channel_type: ClassVar[ChannelType]

    @abc.abstractmethod
    async def send(self, alert: Alert, trap: Trap, channel: AlertChannel) -> None:
        """Deliver *alert* to *channel*.

        Raises:
            DeliveryError: If the notification could not be delivered.
        """


# ---------------------------------------------------------------------------
# HTTP-based adapters
# ---------------------------------------------------------------------------
def _is_transient(exc: BaseException) -> bool:
    """Connection errors, timeouts and 5xx responses are retried; 4xx are not."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))


class HttpChannelAdapter(ChannelAdapter):
    """Base for adapters that POST a JSON document to a URL.

    Subclasses implement ``render`` and ``target_url``; ``headers`` may be
    overridden to add channel-specific headers.

    Retries on: httpx.HTTPStatusError, httpx.ConnectError, httpx.TimeoutException.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_retries: int | None = None,
        backoff_initial: float = 0.5,
        backoff_max: float = 5.0,
    ) -> None:
        self.client = client
        self.max_retries = max_retries or settings.delivery_max_retries
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max

    @abc.abstractmethod
    def render(self, alert: Alert, trap: Trap, channel: AlertChannel) -> dict[str, Any]:
        """Build the JSON payload for *alert*."""

    @abc.abstractmethod
    def target_url(self, channel: AlertChannel) -> str:
        """URL the payload is POSTed to."""

    def headers(self, channel: AlertChannel) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def send(self, alert: Alert, trap: Trap, channel: AlertChannel) -> None:
        url = self.target_url(channel)
        if not url:
            raise DeliveryError(f"Channel {channel.id} has no target URL")
        payload = self.render(alert, trap, channel)
        try:
            response = await self._post_with_retry(url, payload, self.headers(channel))
        except httpx.HTTPError as exc:
            raise DeliveryError(
                f"{self.channel_type.value} delivery to channel {channel.id} failed: {exc}"
            ) from exc
        logger.info(
            "channel_delivered",
            channel_id=channel.id,
            channel_type=self.channel_type.value,
            alert_id=alert.id,
            status=response.status_code,
        )

    async def _post_with_retry(
        self, url: str, payload: dict[str, Any], headers: dict[str, str]
    ) -> httpx.Response:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential_jitter(
                initial=self.backoff_initial, max=self.backoff_max, jitter=self.backoff_initial
            ),
            reraise=True,
        ):
            with attempt:
                logger.debug(
                    "http_post",
                    url=url,
                    attempt=attempt.retry_state.attempt_number,
                )
                response = await self.client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                return response

        # Should not be reached, but satisfies type checker
        raise DeliveryError(f"POST {url} failed after retries")  # pragma: no cover


class WebhookChannelAdapter(HttpChannelAdapter):
    """Generic JSON webhook; ``configuration = {"url": ..., "headers": {...}}``."""

    channel_type = ChannelType.WEBHOOK

    def target_url(self, channel: AlertChannel) -> str:
        return channel.configuration.get("url", "")

    def headers(self, channel: AlertChannel) -> dict[str, str]:
        headers = super().headers(channel)
        headers.update(channel.configuration.get("headers") or {})
        return headers

    def render(self, alert: Alert, trap: Trap, channel: AlertChannel) -> dict[str, Any]:
        return {
            "severity": alert.severity.value,
            "trapName": trap.name,
            "message": alert.trigger_message,
            "timestamp": alert.last_fired_at.isoformat(),
            "service": settings.notification_service_name,
            "alertId": alert.id,
            "trapId": trap.id,
            "status": alert.status.value,
            "fireCount": alert.fire_count,
        }


class TeamsChannelAdapter(HttpChannelAdapter):
    """Microsoft Teams incoming webhook (MessageCard)."""

    channel_type = ChannelType.TEAMS

    def target_url(self, channel: AlertChannel) -> str:
        return channel.configuration.get("webhook_url", "")

    def render(self, alert: Alert, trap: Trap, channel: AlertChannel) -> dict[str, Any]:
        severity = alert.severity.value
        return {
            "@type": "MessageCard",
            "@context": "http://schema.org/extensions",
            "themeColor": TEAMS_THEME_COLORS[alert.severity],
            "summary": f"{settings.notification_service_name} alert",
            "sections": [
                {
                    "activityTitle": f"[{severity}] {trap.name}",
                    "facts": [
                        {"name": "Severity", "value": severity},
                        {"name": "Trap", "value": trap.name},
                        {"name": "Message", "value": alert.trigger_message},
                        {"name": "Time", "value": alert.last_fired_at.isoformat()},
                    ],
                    "markdown": True,
                }
            ],
        }


class SlackChannelAdapter(HttpChannelAdapter):
    """Slack incoming webhook with Block Kit formatting."""

    channel_type = ChannelType.SLACK

    def target_url(self, channel: AlertChannel) -> str:
        return channel.configuration.get("webhook_url", "")

    def render(self, alert: Alert, trap: Trap, channel: AlertChannel) -> dict[str, Any]:
        severity = alert.severity.value
        return {
            "text": f"{settings.notification_service_name} alert: [{severity}] {trap.name}",
            "blocks": [
                {
                    "type": "header",
                    "text": {
                        "type": "plain_text",
                        "text": f"{_SLACK_EMOJI[alert.severity]} Alert: {trap.name}",
                        "emoji": True,
                    },
                },
                {
                    "type": "section",
                    "fields": [
                        {"type": "mrkdwn", "text": f"*Severity:* {severity}"},
                        {"type": "mrkdwn", "text": f"*Trap:* {trap.name}"},
                        {
                            "type": "mrkdwn",
                            "text": f"*Time:* {alert.last_fired_at.isoformat()}",
                        },
                    ],
                },
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": f"*Message:* {alert.trigger_message}"},
                },
            ],
        }


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------
class EmailChannelAdapter(ChannelAdapter):
    """SMTP email; ``configuration = {"recipients": [...], "subject_prefix": ...}``.

    SMTP connection parameters default to the ``smtp_*`` settings.
    """

    channel_type = ChannelType.EMAIL

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
        sender: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.host = host if host is not None else settings.smtp_host
        self.port = port or settings.smtp_port
        self.user = user if user is not None else settings.smtp_user
        self.password = password if password is not None else settings.smtp_password
        self.sender = sender or settings.smtp_sender
        self.timeout = timeout or settings.delivery_timeout_seconds

    def render(self, alert: Alert, trap: Trap, channel: AlertChannel) -> MIMEMultipart:
        severity = alert.severity.value
        prefix = channel.configuration.get("subject_prefix", "[LogTrap]")
        fired_at = alert.last_fired_at.isoformat()
        color = _EMAIL_COLORS[alert.severity]
        name = html.escape(trap.name)
        message = html.escape(alert.trigger_message)

        text_body = (
            f"Trap: {trap.name}\n"
            f"Severity: {severity}\n"
            f"Time: {fired_at}\n"
            f"Fire count: {alert.fire_count}\n\n"
            f"{alert.trigger_message}\n"
        )
        html_body = f"""
        <html>
        <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <div style="background: {color}; color: white; padding: 16px;">
                <h2 style="margin: 0;">Alert: {name}</h2>
            </div>
            <table style="width: 100%; border-collapse: collapse;">
                <tr><td style="padding: 8px; font-weight: bold;">Severity</td>
                <td style="padding: 8px;">{severity}</td></tr>
                <tr><td style="padding: 8px; font-weight: bold;">Trap</td>
                <td style="padding: 8px;">{name}</td></tr>
                <tr><td style="padding: 8px; font-weight: bold;">Time</td>
                <td style="padding: 8px;">{fired_at}</td></tr>
            </table>
            <p style="margin-top: 16px; color: #666;">{message}</p>
        </body>
        </html>
        """

        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"{prefix} [{severity}] {trap.name}"
        msg["From"] = self.sender
        msg["To"] = ", ".join(channel.configuration.get("recipients", []))
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))
        return msg

    async def send(self, alert: Alert, trap: Trap, channel: AlertChannel) -> None:
        if not self.host:
            raise DeliveryError("SMTP host not configured -- cannot send email")
        recipients = list(channel.configuration.get("recipients") or [])
        if not recipients:
            raise DeliveryError(f"Email channel {channel.id} has no recipients")

        msg = self.render(alert, trap, channel)
        try:
            await asyncio.to_thread(self._sendmail, recipients, msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"Email delivery to channel {channel.id} failed: {exc}") from exc
        logger.info(
            "email_sent",
            channel_id=channel.id,
            alert_id=alert.id,
            recipients=len(recipients),
        )

    def _sendmail(self, recipients: list[str], msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.port == 587:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(self.sender, recipients, msg.as_string())


def build_adapters(
    client: httpx.AsyncClient,
    email: EmailChannelAdapter | None = None,
    max_retries: int | None = None,
    backoff_initial: float = 0.5,
) -> dict[ChannelType, ChannelAdapter]:
    """One adapter per channel type; HTTP adapters share *client*."""
    http_kwargs = {"max_retries": max_retries, "backoff_initial": backoff_initial}
    return {
        ChannelType.EMAIL: email or EmailChannelAdapter(),
        ChannelType.WEBHOOK: WebhookChannelAdapter(client, **http_kwargs),
        ChannelType.TEAMS: TeamsChannelAdapter(client, **http_kwargs),
        ChannelType.SLACK: SlackChannelAdapter(client, **http_kwargs),
    }
