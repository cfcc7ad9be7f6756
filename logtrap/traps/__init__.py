"""Traps package -- trap definitions and condition evaluation.

Provides:
- Trap, LogEntry, MatchResult, EvaluationContext: domain dataclasses
- validate_trap / validate_channel_config: definition-time validation
- build_evaluators, PatternCache: one evaluator per condition type
- TrapService: trap CRUD and dry-run testing

The evaluation engine lives in ``logtrap.traps.engine``.
"""

from logtrap.traps.evaluators import PatternCache, build_evaluators
from logtrap.traps.models import EvaluationContext, LogEntry, MatchResult, Trap
from logtrap.traps.trap_service import TrapService, TrapTestResult
from logtrap.traps.validation import validate_channel_config, validate_trap

__all__ = [
    "EvaluationContext",
    "LogEntry",
    "MatchResult",
    "PatternCache",
    "Trap",
    "TrapService",
    "TrapTestResult",
    "build_evaluators",
    "validate_channel_config",
    "validate_trap",
]
