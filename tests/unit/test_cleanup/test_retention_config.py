"""Unit tests for retention thresholds."""

import pytest
from pydantic import ValidationError

from src.cleanup.config import CONFIG_KEYS, RetentionConfig


class TestRetentionConfig:
    """Tests for RetentionConfig."""

    def test_defaults(self) -> None:
        """Test built-in defaults."""
        config = RetentionConfig()

        assert config.articles_retention_limit == 1000
        assert config.max_articles_per_cleanup_batch == 1000
        assert config.max_ids_per_delete_operation == 200
        assert config.feed_deletion_safety_threshold == 0.5
        assert config.deletion_tracking_enabled is True
        assert config.deletion_tracking_retention_days == 90

    def test_threshold_out_of_range(self) -> None:
        """Test a threshold above 1 is rejected."""
        with pytest.raises(ValidationError):
            RetentionConfig(feed_deletion_safety_threshold=1.5)

    def test_keys_match_fields(self) -> None:
        """Test every config key names a field."""
        assert set(CONFIG_KEYS) == set(RetentionConfig.model_fields)


class TestFromSystemConfig:
    """Tests for parsing system_config strings."""

    def test_parses_values(self) -> None:
        """Test numeric and boolean strings are coerced."""
        config = RetentionConfig.from_system_config(
            {
                "articles_retention_limit": "250",
                "feed_deletion_safety_threshold": "0.25",
                "deletion_tracking_enabled": "false",
            }
        )

        assert config.articles_retention_limit == 250
        assert config.feed_deletion_safety_threshold == 0.25
        assert config.deletion_tracking_enabled is False
        assert config.max_ids_per_delete_operation == 200

    @pytest.mark.parametrize(
        ("key", "raw"),
        [
            ("articles_retention_limit", "lots"),
            ("max_ids_per_delete_operation", "0"),
            ("feed_deletion_safety_threshold", "2"),
            ("deletion_tracking_enabled", "maybe"),
        ],
    )
    def test_invalid_value_falls_back(self, key: str, raw: str) -> None:
        """Test unparseable or out-of-range values keep the default."""
        config = RetentionConfig.from_system_config({key: raw})

        assert getattr(config, key) == getattr(RetentionConfig(), key)

    def test_unknown_keys_ignored(self) -> None:
        """Test unrelated system_config entries are ignored."""
        config = RetentionConfig.from_system_config({"sync_last_processed_at": "x"})
        assert config == RetentionConfig()
