"""Per-service, per-day API call counting."""

from collections.abc import Callable
from datetime import UTC, date, datetime

import structlog
from pydantic import BaseModel, ConfigDict, Field

from src.remote.constants import INOREADER_SERVICE
from src.remote.models import RateLimitSnapshot
from src.store.errors import StateStoreError
from src.store.store import SyncStore
from src.sync.constants import API_NEAR_LIMIT_RATIO, DEFAULT_DAILY_API_LIMIT


logger = structlog.get_logger()


class ApiUsageLimits(BaseModel):
    """Today's call count measured against the daily quota."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    service: str
    used: int = Field(ge=0)
    limit: int = Field(ge=1)
    percentage: float
    is_near_limit: bool
    is_over_limit: bool

    @classmethod
    def from_count(cls, service: str, used: int, limit: int) -> "ApiUsageLimits":
        """Grade a call count against a daily limit."""
        return cls(
            service=service,
            used=used,
            limit=limit,
            percentage=round(used / limit * 100, 1),
            is_near_limit=used >= limit * API_NEAR_LIMIT_RATIO,
            is_over_limit=used >= limit,
        )


class ApiUsageTracker:
    """Observational counter of remote calls.

    The tracker never gates calls and never raises: a failed read or write
    is logged and dropped so it cannot abort a sync cycle. Crossing 80% of
    the daily limit, and then the limit itself, only logs a warning.
    """

    def __init__(
        self,
        store: SyncStore,
        clock: Callable[[], datetime] | None = None,
        daily_limit: int = DEFAULT_DAILY_API_LIMIT,
    ) -> None:
        if daily_limit < 1:
            msg = f"daily_limit must be positive, got {daily_limit}"
            raise ValueError(msg)
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._daily_limit = daily_limit
        self._log = logger.bind(component="sync", subcomponent="usage")

    @property
    def daily_limit(self) -> int:
        """Remote calls allowed per day."""
        return self._daily_limit

    def _today(self) -> date:
        return self._clock().astimezone(UTC).date()

    def track_api_usage(self, service: str = INOREADER_SERVICE) -> None:
        """Count one successful remote call against today's row.

        Args:
            service: Remote service name.
        """
        day = self._today()
        try:
            existing = self._store.get_api_usage(service, day)
            if existing is None:
                self._store.insert_api_usage(service, day, count=1)
                used = 1
            else:
                self._store.increment_api_usage(service, day)
                used = existing.count + 1
        except Exception as exc:  # noqa: BLE001
            self._log.warning(
                "api_usage_tracking_failed",
                service=service,
                date=day.isoformat(),
                error=str(exc),
            )
            return

        self._warn_on_limit(ApiUsageLimits.from_count(service, used, self._daily_limit))

    def check_limits(self, service: str = INOREADER_SERVICE) -> ApiUsageLimits:
        """Measure today's usage against the daily limit.

        A store failure is logged and reported as zero usage.

        Args:
            service: Remote service name.
        """
        day = self._today()
        try:
            record = self._store.get_api_usage(service, day)
        except StateStoreError as exc:
            self._log.warning(
                "api_usage_read_failed", service=service, error=str(exc)
            )
            record = None
        used = record.count if record is not None else 0
        return ApiUsageLimits.from_count(service, used, self._daily_limit)

    def _warn_on_limit(self, limits: ApiUsageLimits) -> None:
        if limits.is_over_limit:
            self._log.warning(
                "api_daily_limit_reached",
                service=limits.service,
                used=limits.used,
                limit=limits.limit,
            )
        elif limits.is_near_limit:
            self._log.warning(
                "api_daily_limit_near",
                service=limits.service,
                used=limits.used,
                limit=limits.limit,
                percentage=limits.percentage,
            )

    def record_rate_limits(
        self,
        snapshot: RateLimitSnapshot,
        service: str = INOREADER_SERVICE,
    ) -> None:
        """Store the quota counters the remote service reported.

        Args:
            snapshot: Parsed quota headers.
            service: Remote service name.
        """
        zones = snapshot.to_zone_columns()
        if not zones:
            return
        day = self._today()
        try:
            self._store.record_rate_limits(service, day, zones)
        except Exception as exc:  # noqa: BLE001
            self._log.warning(
                "rate_limit_capture_failed", service=service, error=str(exc)
            )
            return
        self._log.debug("rate_limits_captured", service=service, **zones)
