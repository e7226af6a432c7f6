"""Observability module for structured logging."""

from src.observability.logging import (
    bind_sync_context,
    clear_sync_context,
    configure_logging,
    get_logger,
    parse_log_level,
)


__all__ = [
    "bind_sync_context",
    "clear_sync_context",
    "configure_logging",
    "get_logger",
    "parse_log_level",
]
