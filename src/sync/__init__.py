"""Push side of the bidirectional sync engine.

Batches queued local read/star mutations into remote edit-tag calls,
persists retry counters, tracks API usage, and runs on a fixed interval.
"""

from src.sync.config import EngineConfig
from src.sync.dispatcher import BiDirectionalSync, CycleResult, CycleStatus
from src.sync.health import HealthReport, QueueHealth, assess_queue_health
from src.sync.metrics import SyncMetrics
from src.sync.retry import RetryController, RetryOutcome
from src.sync.scheduler import PeriodicScheduler
from src.sync.usage import ApiUsageTracker


__all__ = [
    # Engine
    "BiDirectionalSync",
    "CycleResult",
    "CycleStatus",
    "EngineConfig",
    # Collaborators
    "ApiUsageTracker",
    "PeriodicScheduler",
    "RetryController",
    "RetryOutcome",
    # Monitoring
    "HealthReport",
    "QueueHealth",
    "SyncMetrics",
    "assess_queue_health",
]
