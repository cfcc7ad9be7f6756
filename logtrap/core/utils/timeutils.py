"""UTC time helpers shared by evaluators, the lifecycle manager and stores.

Every component takes a ``Clock`` (a zero-argument callable returning an
aware UTC datetime) so that tests can drive time explicitly.
"""

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return *dt* as aware UTC; naive values (e.g. read back from SQLite) are assumed UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
