"""Conflict resolution policy for pulled article state.

Remote always wins; every divergence is appended to a conflict log sink.
"""

from src.conflicts.detector import ConflictDetector, classify_conflict
from src.conflicts.models import (
    ArticleState,
    ConflictLogEntry,
    ConflictSummary,
    ConflictType,
    Resolution,
)
from src.conflicts.sinks import (
    ConflictLogSink,
    JsonlConflictLogSink,
    StoreConflictLogSink,
)
from src.conflicts.state_machine import (
    ConflictState,
    ConflictStateError,
    ConflictStateMachine,
)


__all__ = [
    # Detector
    "ConflictDetector",
    "classify_conflict",
    # Models
    "ArticleState",
    "ConflictLogEntry",
    "ConflictSummary",
    "ConflictType",
    "Resolution",
    # Sinks
    "ConflictLogSink",
    "JsonlConflictLogSink",
    "StoreConflictLogSink",
    # State machine
    "ConflictState",
    "ConflictStateError",
    "ConflictStateMachine",
]
