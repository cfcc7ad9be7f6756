"""SQLAlchemy 2.0 ORM models for the log trap engine.

Re-exports Base and the model classes for convenient imports:
  - LogTrapRecord + trap_channels association
  - AlertChannelRecord
  - AlertRecord
  - LogEntryRecord (read-only to the engine)
"""

from .alerts import AlertRecord
from .base import Base
from .channels import AlertChannelRecord
from .log_entries import LogEntryRecord
from .traps import LogTrapRecord, trap_channels

__all__ = [
    "Base",
    "LogTrapRecord",
    "trap_channels",
    "AlertChannelRecord",
    "AlertRecord",
    "LogEntryRecord",
]
