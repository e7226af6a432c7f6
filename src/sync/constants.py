"""Constants for the sync engine."""

# system_config key mirroring the engine's last processed time
LAST_PROCESSED_CONFIG_KEY = "sync_last_processed_at"

# Queue health thresholds
UNHEALTHY_FAILED_ITEMS = 50
DEGRADED_FAILED_ITEMS = 10
DEGRADED_PENDING_ITEMS = 100

# Seconds to wait for an in-flight cycle when stopping the scheduler
SCHEDULER_JOIN_TIMEOUT_SECONDS = 300.0

# Remote API daily quota (free tier) and the share that triggers a warning
DEFAULT_DAILY_API_LIMIT = 100
API_NEAR_LIMIT_RATIO = 0.8
