"""Exception hierarchy for the log trap engine.

- LogTrapError: base for all engine errors
- ValidationError: malformed trap or channel definition, raised at definition time
- ChannelInUseError: channel deletion refused while an active trap references it
- NotFoundError: unknown trap, alert or channel id
- InvalidTransitionError: illegal alert status change
- EvaluationError: evaluator failure on a single trap (caught per trap)
- DeliveryError: channel delivery failure (caught per channel)
"""


class LogTrapError(Exception):
    """Base exception for all log trap engine errors."""


class ValidationError(LogTrapError):
    """Raised when a trap or channel definition is invalid."""


class ChannelInUseError(ValidationError):
    """Raised when deleting a channel that an active trap still references."""


class NotFoundError(LogTrapError):
    """Raised when a trap, alert or channel cannot be found."""


class InvalidTransitionError(LogTrapError):
    """Raised when an alert status change is not allowed."""


class EvaluationError(LogTrapError):
    """Raised when a condition cannot be evaluated against its input."""


class DeliveryError(LogTrapError):
    """Raised when a notification cannot be delivered to a channel."""
