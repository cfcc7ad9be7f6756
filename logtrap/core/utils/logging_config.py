"""structlog setup for the log trap engine.

Console rendering for local runs, JSON lines when ``settings.log_json`` is set
(deployments ship engine logs to the same pipeline the traps watch). Context
bound through ``structlog.contextvars`` (entry_id, team_id) is merged into
every event.
"""

import logging

import structlog

from ..config import settings

_configured = False


def _level_number(level: int | str) -> int:
    if isinstance(level, int):
        return level
    number = logging.getLevelName(level.upper())
    return number if isinstance(number, int) else logging.INFO


def configure_logging(level: int | str | None = None, json: bool | None = None) -> None:
    """Configure structlog processors once; later calls are no-ops.

    Args:
        level: Minimum level name or number (defaults to ``settings.log_level``).
        json: Render JSON lines instead of console output
            (defaults to ``settings.log_json``).
    """
    global _configured
    if _configured:
        return

    use_json = settings.log_json if json is None else json
    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _level_number(settings.log_level if level is None else level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.BoundLogger:
    """Configured logger bound with ``logger_name=name``."""
    configure_logging()
    return structlog.get_logger(logger_name=name)
