"""Pydantic-settings configuration for the log trap engine.

Loads database, scheduling, delivery and SMTP parameters from the .env file
with sensible defaults for local development. Per-trap values (cooldown,
windows) override the defaults declared here.
"""

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Project
    project_name: str = "logtrap"
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Database (async driver URL)
    database_url: str = "sqlite+aiosqlite:///./logtrap.db"
    db_echo: bool = False

    # Alerting
    default_cooldown_seconds: int = 300
    alert_message_max_length: int = 200

    # Absence scheduler
    scheduler_tick_seconds: float = 60.0

    # Notification delivery
    delivery_timeout_seconds: float = 10.0
    delivery_max_retries: int = 3
    notification_service_name: str = "logtrap"

    # Limits
    max_traps_per_team: int = 100
    max_alert_channels: int = 20
    max_pattern_cache_size: int = 1000
    max_query_results: int = 10_000

    # SMTP (EMAIL channels)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_sender: str = "alerts@logtrap.local"

    @computed_field
    @property
    def smtp_configured(self) -> bool:
        """True when an SMTP relay is available for EMAIL channels."""
        return bool(self.smtp_host)


# Singleton instance
settings = Settings()
