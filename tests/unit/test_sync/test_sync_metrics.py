"""Unit tests for sync engine metrics."""

import pytest

from src.sync.metrics import SyncMetrics


class TestSyncMetrics:
    """Tests for SyncMetrics class."""

    def setup_method(self) -> None:
        """Reset metrics before each test."""
        SyncMetrics.reset()

    def teardown_method(self) -> None:
        """Reset metrics after each test."""
        SyncMetrics.reset()

    def test_singleton_instance(self) -> None:
        """SyncMetrics is a singleton."""
        assert SyncMetrics.get_instance() is SyncMetrics.get_instance()

    def test_increment(self) -> None:
        """Increment adds to the named counter."""
        metrics = SyncMetrics.get_instance()
        metrics.increment("batches_sent")
        metrics.increment("items_synced", 42)

        assert metrics.to_dict()["batches_sent"] == 1
        assert metrics.to_dict()["items_synced"] == 42

    def test_unknown_counter(self) -> None:
        """Unknown counters are rejected."""
        with pytest.raises(AttributeError, match="Unknown sync metric"):
            SyncMetrics().increment("nope")

    def test_reset_clears(self) -> None:
        """Reset returns a fresh instance."""
        SyncMetrics.get_instance().increment("cycles_run")
        SyncMetrics.reset()
        assert SyncMetrics.get_instance().cycles_run == 0
