"""CLI commands for the sync engine."""

import json
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta

import click
import structlog

from src.cleanup.service import CleanupService
from src.conflicts.sinks import (
    ConflictLogSink,
    JsonlConflictLogSink,
    StoreConflictLogSink,
)
from src.observability.logging import configure_logging, parse_log_level
from src.pull.service import PullSync
from src.remote.auth import TokenManager
from src.remote.client import InoreaderClient
from src.remote.errors import RemoteApiError
from src.settings import SyncSettings, get_settings
from src.store.errors import StateStoreError
from src.store.models import ActionType
from src.store.store import SyncStore
from src.sync.config import EngineConfig
from src.sync.dispatcher import BiDirectionalSync


logger = structlog.get_logger()


@dataclass
class Components:
    """Wired engine parts for one CLI invocation."""

    store: SyncStore
    tokens: TokenManager
    client: InoreaderClient
    engine: BiDirectionalSync


def _conflict_sink(settings: SyncSettings, store: SyncStore) -> ConflictLogSink:
    if settings.conflict_log_path is not None:
        return JsonlConflictLogSink(settings.conflict_log_path)
    return StoreConflictLogSink(store)


@contextmanager
def _components(settings: SyncSettings) -> Iterator[Components]:
    """Open the store and HTTP client, closing both on exit."""
    tokens = TokenManager(
        access_token=settings.inoreader_access_token,
        refresh_token=settings.inoreader_refresh_token,
        client_id=settings.inoreader_client_id,
        client_secret=settings.inoreader_client_secret,
        timeout=settings.http_timeout_seconds,
    )
    client = InoreaderClient(tokens, api_base=settings.inoreader_api_base)
    try:
        with SyncStore(db_path=settings.db_path) as store:
            engine = BiDirectionalSync(
                store, client, config=EngineConfig.from_settings(settings)
            )
            yield Components(store=store, tokens=tokens, client=client, engine=engine)
    finally:
        tokens.close()


def _echo_json(payload: object) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--log-level",
    default=None,
    help="Log level (default: LOG_LEVEL or INFO).",
)
@click.option(
    "--json-logs/--console-logs",
    "json_logs",
    default=None,
    help="Use JSON format for logs (default: LOG_JSON or true).",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None, json_logs: bool | None) -> None:
    """Bidirectional RSS sync engine CLI."""
    settings = get_settings()
    configure_logging(
        level=parse_log_level(log_level or settings.log_level),
        json_format=settings.log_json if json_logs is None else json_logs,
    )
    ctx.obj = settings


@cli.command()
@click.pass_obj
def run(settings: SyncSettings) -> None:
    """Run periodic sync until interrupted."""
    log = logger.bind(component="cli", command="run")
    with _components(settings) as parts:
        parts.engine.start_periodic_sync()
        log.info("periodic_sync_running", interval_seconds=settings.interval_seconds)
        try:
            threading.Event().wait()
        except KeyboardInterrupt:
            log.info("periodic_sync_interrupted")
        finally:
            parts.engine.stop_periodic_sync()


@cli.command()
@click.pass_obj
def process(settings: SyncSettings) -> None:
    """Run one dispatch cycle and print its outcome."""
    with _components(settings) as parts:
        result = parts.engine.trigger_manual_sync()
        _echo_json(result.model_dump(mode="json"))


@cli.command()
@click.pass_obj
def pull(settings: SyncSettings) -> None:
    """Pull remote state, resolve conflicts, then run cleanup."""
    log = logger.bind(component="cli", command="pull")
    with _components(settings) as parts:
        pull_sync = PullSync(
            parts.store,
            parts.client,
            cleanup=CleanupService(parts.store),
            usage=parts.engine.usage_tracker,
            conflict_sink=_conflict_sink(settings, parts.store),
            max_articles=settings.pull_max_articles,
        )
        try:
            result = pull_sync.run()
        except (RemoteApiError, StateStoreError) as exc:
            log.error("pull_failed", error=str(exc))
            click.echo(f"Pull failed: {exc}", err=True)
            sys.exit(1)
        _echo_json(result.model_dump(mode="json"))


@cli.command()
@click.pass_obj
def stats(settings: SyncSettings) -> None:
    """Print queue stats and health as JSON.

    The scheduler lives in the `run` process, so its state is not graded here.
    """
    with _components(settings) as parts:
        report = parts.engine.get_health(include_scheduler=False)
        _echo_json(report.model_dump(mode="json"))


@cli.command("clear-failed")
@click.option(
    "--older-than-hours",
    default=24.0,
    type=click.FloatRange(min=0),
    show_default=True,
    help="Only purge rows created at least this long ago.",
)
@click.pass_obj
def clear_failed(settings: SyncSettings, older_than_hours: float) -> None:
    """Purge queue rows that exhausted their retries or were dead-lettered."""
    with _components(settings) as parts:
        removed = parts.engine.clear_failed_items(timedelta(hours=older_than_hours))
        click.echo(f"Removed {removed} failed items")


@cli.command()
@click.argument("inoreader_id")
@click.argument(
    "action",
    type=click.Choice([action.value for action in ActionType]),
)
@click.pass_obj
def enqueue(settings: SyncSettings, inoreader_id: str, action: str) -> None:
    """Queue a local read/star change for INOREADER_ID."""
    with _components(settings) as parts:
        item = parts.engine.queue_change(inoreader_id, action)
        _echo_json(item.model_dump(mode="json"))


@cli.command("db-stats")
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output as JSON.",
)
@click.pass_obj
def db_stats(settings: SyncSettings, json_output: bool) -> None:
    """Display database statistics.

    Shows row counts for all tables and the schema version.
    """
    with SyncStore(db_path=settings.db_path) as store:
        table_stats = store.get_stats()
        schema_version = store.get_schema_version()

    if json_output:
        _echo_json({"schema_version": schema_version, "tables": table_stats})
        return

    click.echo("Sync Database Statistics")
    click.echo("=" * 40)
    click.echo(f"  Schema Version: {schema_version}")
    click.echo("")
    click.echo("Table Row Counts:")
    for table, count in sorted(table_stats.items()):
        click.echo(f"  {table}: {count}")


def main() -> None:
    """Console script entry point."""
    cli()
