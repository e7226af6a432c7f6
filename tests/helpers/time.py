"""Shared, deterministic timestamps for tests."""

from datetime import UTC, datetime, timedelta


# Fixed timestamp to keep queue ages and usage dates deterministic.
FIXED_NOW = datetime(2017, 6, 13, 0, 0, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by a ``timedelta(**kwargs)``."""
        self.now = self.now + timedelta(**kwargs)
        return self.now
