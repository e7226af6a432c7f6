"""Queue health assessment for monitoring."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.store.models import SyncQueueStats
from src.sync.constants import (
    DEGRADED_FAILED_ITEMS,
    DEGRADED_PENDING_ITEMS,
    UNHEALTHY_FAILED_ITEMS,
)
from src.sync.usage import ApiUsageLimits


class QueueHealth(str, Enum):
    """Overall queue status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthReport(BaseModel):
    """Queue health with the reasons behind it.

    ``scheduler_running`` is None when the report comes from a process that
    does not own the scheduler and so cannot tell.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: QueueHealth
    issues: list[str] = Field(default_factory=list)
    stats: SyncQueueStats
    scheduler_running: bool | None
    api_usage: ApiUsageLimits | None = None


def assess_queue_health(
    stats: SyncQueueStats,
    scheduler_running: bool | None,
    api_usage: ApiUsageLimits | None = None,
) -> HealthReport:
    """Grade the queue.

    Unhealthy when more than 50 rows exhausted their retries; degraded when
    more than 100 rows are pending, more than 10 exhausted their retries,
    the scheduler is stopped, or today's API calls reached the daily limit.
    Nearing the limit is reported as an issue without changing the status.

    Args:
        stats: Current queue stats.
        scheduler_running: Whether periodic sync is active, or None to skip
            the scheduler check.
        api_usage: Today's usage against the daily limit, if known.
    """
    issues: list[str] = []
    status = QueueHealth.HEALTHY

    if stats.failed_items > UNHEALTHY_FAILED_ITEMS:
        status = QueueHealth.UNHEALTHY
        issues.append(f"{stats.failed_items} items exhausted their retries")
    elif stats.failed_items > DEGRADED_FAILED_ITEMS:
        status = QueueHealth.DEGRADED
        issues.append(f"{stats.failed_items} items exhausted their retries")

    if stats.total_pending > DEGRADED_PENDING_ITEMS:
        issues.append(f"{stats.total_pending} items pending")
        if status == QueueHealth.HEALTHY:
            status = QueueHealth.DEGRADED

    if scheduler_running is False:
        issues.append("periodic sync is not running")
        if status == QueueHealth.HEALTHY:
            status = QueueHealth.DEGRADED

    if api_usage is not None:
        if api_usage.is_over_limit:
            issues.append(
                f"daily API limit reached ({api_usage.used}/{api_usage.limit})"
            )
            if status == QueueHealth.HEALTHY:
                status = QueueHealth.DEGRADED
        elif api_usage.is_near_limit:
            issues.append(
                f"daily API usage at {api_usage.percentage}% "
                f"({api_usage.used}/{api_usage.limit})"
            )

    return HealthReport(
        status=status,
        issues=issues,
        stats=stats,
        scheduler_running=scheduler_running,
        api_usage=api_usage,
    )
