"""Engine tuning knobs."""

from pydantic import BaseModel, ConfigDict, Field

from src.settings import SyncSettings


class EngineConfig(BaseModel):
    """Batching and retry parameters for one engine instance.

    Attributes:
        min_changes: Pending rows needed before a cycle dispatches.
        batch_size: Maximum ids per remote call.
        max_retries: Attempts before a row is abandoned.
        staleness_seconds: Age after which rows bypass the batching gate.
        interval_seconds: Scheduler period.
        daily_api_limit: Remote calls per day before usage warnings escalate.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_changes: int = Field(default=5, ge=1)
    batch_size: int = Field(default=100, ge=1, le=1000)
    max_retries: int = Field(default=3, ge=1)
    staleness_seconds: float = Field(default=15 * 60, gt=0)
    interval_seconds: float = Field(default=5 * 60, gt=0)
    daily_api_limit: int = Field(default=100, ge=1)

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> "EngineConfig":
        """Build from environment settings."""
        return cls(
            min_changes=settings.min_changes,
            batch_size=settings.batch_size,
            max_retries=settings.max_retries,
            staleness_seconds=settings.staleness_seconds,
            interval_seconds=settings.interval_seconds,
            daily_api_limit=settings.daily_api_limit,
        )
