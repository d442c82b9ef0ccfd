"""CLI entry point for ingestloop."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

import click
import yaml

from ingestloop import __version__
from ingestloop.config import IngestConfig, get_env_credentials, load_config
from ingestloop.errors import ExecutionBusyError
from ingestloop.models import Emission
from ingestloop.processor import (
    ExecutionIndex,
    FileStateStore,
    IterationDriver,
    new_execution_id,
)
from ingestloop.providers import PROVIDER_REGISTRY, get_provider, list_providers
from ingestloop.sanitizer import PROFILES
from ingestloop.utils.logging import configure_logging, get_logger, set_correlation_id
from ingestloop.utils.result import ExitCode

# Default paths
DEFAULT_CONFIG = "./config"
DEFAULT_STATE = "./state"


class Context:
    """CLI context for sharing state between commands."""

    def __init__(
        self,
        config_dir: Path,
        state_dir: Path,
        log_level: str,
        log_format: str,
        dry_run: bool,
    ) -> None:
        self.config_dir = config_dir
        self.state_dir = state_dir
        self.log_level = log_level
        self.log_format = log_format
        self.dry_run = dry_run
        self.logger = get_logger("cli")

        self.store = FileStateStore(state_dir)
        self.index = ExecutionIndex(state_dir)
        self._config: Optional[IngestConfig] = None

    @property
    def config(self) -> IngestConfig:
        """Configuration loaded on first use; exits if invalid."""
        if self._config is None:
            result = load_config(self.config_dir)
            if result.is_err():
                error = result.unwrap_err()
                self.logger.error("config_invalid", field=error.field, message=error.message)
                fail(str(error), ExitCode.CONFIG_INVALID)
            self._config = result.unwrap().with_paths(state_dir=self.state_dir)
        return self._config

    def driver(self, source: str, profile: Optional[str] = None) -> IterationDriver:
        """Build a driver for a registered source."""
        kwargs: dict[str, Any] = {}
        if profile and source != "static":
            raise click.UsageError("--profile only applies to the static source")
        if profile:
            kwargs["profile"] = PROFILES[profile]

        provider = get_provider(source, self.config, **kwargs)
        return IterationDriver(
            provider,
            store=self.store,
            config=self.config,
            context=get_env_credentials(),
        )


pass_context = click.make_pass_decorator(Context)


def output_json(data: Any) -> None:
    """Output JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def fail(message: str, code: int, **extra: Any) -> None:
    """Report an error as JSON and exit."""
    output_json({"status": "error", "message": message, **extra})
    sys.exit(code)


def parse_options(pairs: tuple[str, ...]) -> dict[str, Any]:
    """
    Parse ``key=value`` pairs into provider options.

    Values are read as YAML scalars, so ``10`` is an int and ``false`` a
    bool; anything else stays a string.
    """
    options: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected key=value, got {pair!r}", param_hint="--option")
        try:
            value = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            value = raw
        options[key.strip()] = raw if isinstance(value, (dict, list)) else value
    return options


def exit_code_for(emissions: list[Emission]) -> int:
    """Exit code for the emissions of one event."""
    if any(e.error and e.is_terminal and e.total == 0 for e in emissions):
        return ExitCode.FETCH_FAILED
    return ExitCode.SUCCESS


def state_summary(execution_id: str, state, entry: Optional[dict] = None) -> dict:
    """Describe a stored execution without its items."""
    entry = entry or {}
    return {
        "executionId": execution_id,
        "source": entry.get("source"),
        "sourceKey": state.source_key or entry.get("sourceKey"),
        "phase": state.phase.name,
        "currentIndex": state.current_index,
        "totalItems": state.total_items,
        "isComplete": state.is_complete,
        "error": state.error,
    }


@click.group()
@click.option(
    "--config",
    type=click.Path(exists=False, path_type=Path),
    default=DEFAULT_CONFIG,
    help="Path to config directory",
)
@click.option(
    "--state-dir",
    type=click.Path(exists=False, path_type=Path),
    default=DEFAULT_STATE,
    help="Path to execution state directory",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warn", "error"], case_sensitive=False),
    default=None,
    help="Logging level (defaults to the configured level)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "text"], case_sensitive=False),
    default=None,
    help="Log format (defaults to the configured format)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Show what would be done without executing",
)
@click.version_option(version=__version__)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path,
    state_dir: Path,
    log_level: str,
    log_format: str,
    dry_run: bool,
) -> None:
    """
    ingestloop - Resumable one-item-at-a-time ingestion.

    Fetches a collection once per execution and emits its items one by one,
    resuming from stored state on every `continue`.
    """
    if log_level is None or log_format is None:
        configured = load_config(config)
        if configured.is_ok():
            log_level = log_level or configured.unwrap().logging.level
            log_format = log_format or configured.unwrap().logging.format
    log_level = log_level or "info"
    log_format = log_format or "json"

    configure_logging(level=log_level, format_type=log_format)

    ctx.obj = Context(
        config_dir=config,
        state_dir=state_dir,
        log_level=log_level,
        log_format=log_format,
        dry_run=dry_run,
    )


@cli.command()
def sources() -> None:
    """List registered sources."""
    output_json([
        {
            "name": name,
            "description": (PROVIDER_REGISTRY[name].__doc__ or "").strip().splitlines()[0],
            "credential": PROVIDER_REGISTRY[name].credential_name,
            "sourceKeyAliases": list(PROVIDER_REGISTRY[name].source_key_aliases),
        }
        for name in list_providers()
    ])


@cli.command()
@click.argument("source", type=click.Choice(list_providers()))
@click.argument("source_key")
@click.option("--option", "option_pairs", multiple=True, help="Provider option as key=value (repeatable)")
@click.option("--execution-id", default=None, help="Execution id (generated if omitted)")
@click.option(
    "--profile",
    type=click.Choice(sorted(PROFILES)),
    default=None,
    help="Sanitize profile for the static source",
)
@pass_context
def execute(
    ctx: Context,
    source: str,
    source_key: str,
    option_pairs: tuple[str, ...],
    execution_id: Optional[str],
    profile: Optional[str],
) -> None:
    """Fetch SOURCE_KEY from SOURCE and emit the first item."""
    options = parse_options(option_pairs)
    execution_id = execution_id or new_execution_id()
    set_correlation_id(execution_id)

    if ctx.dry_run:
        output_json({
            "status": "dry_run",
            "message": "Would fetch and emit the first item",
            "executionId": execution_id,
            "source": source,
            "sourceKey": source_key,
            "options": options,
        })
        return

    existing = ctx.index.get(execution_id)
    if existing is not None and existing["source"] != source:
        fail(
            f"Execution {execution_id} belongs to source {existing['source']}",
            ExitCode.GENERAL_ERROR,
        )

    driver = ctx.driver(source, profile)
    ctx.index.register(execution_id, source, source_key, options, profile)
    try:
        emissions = asyncio.run(driver.execute(execution_id, source_key, options))
    except ExecutionBusyError as e:
        fail(str(e), ExitCode.EXECUTION_BUSY)

    state = ctx.store.load(execution_id)
    output_json({
        "executionId": execution_id,
        "emissions": [e.to_dict() for e in emissions],
        "state": state_summary(execution_id, state, ctx.index.get(execution_id)),
    })
    sys.exit(exit_code_for(emissions))


@cli.command(name="continue")
@click.argument("execution_id")
@pass_context
def continue_(ctx: Context, execution_id: str) -> None:
    """Emit the next item of EXECUTION_ID."""
    set_correlation_id(execution_id)

    entry = ctx.index.get(execution_id)
    if entry is None or ctx.store.load(execution_id) is None:
        fail(f"Execution not found: {execution_id}", ExitCode.EXECUTION_NOT_FOUND)

    if ctx.dry_run:
        output_json({
            "status": "dry_run",
            "message": "Would emit the next item",
            "executionId": execution_id,
        })
        return

    driver = ctx.driver(entry["source"], entry.get("profile"))
    try:
        emissions = asyncio.run(driver.advance(execution_id))
    except ExecutionBusyError as e:
        fail(str(e), ExitCode.EXECUTION_BUSY)

    state = ctx.store.load(execution_id)
    output_json({
        "executionId": execution_id,
        "emissions": [e.to_dict() for e in emissions],
        "state": state_summary(execution_id, state, entry),
    })


@cli.command()
@click.argument("source", type=click.Choice(list_providers()))
@click.argument("source_key")
@click.option("--option", "option_pairs", multiple=True, help="Provider option as key=value (repeatable)")
@click.option("--execution-id", default=None, help="Execution id (generated if omitted)")
@click.option(
    "--profile",
    type=click.Choice(sorted(PROFILES)),
    default=None,
    help="Sanitize profile for the static source",
)
@pass_context
def drain(
    ctx: Context,
    source: str,
    source_key: str,
    option_pairs: tuple[str, ...],
    execution_id: Optional[str],
    profile: Optional[str],
) -> None:
    """Fetch SOURCE_KEY and emit every item as JSON lines."""
    options = parse_options(option_pairs)
    execution_id = execution_id or new_execution_id()
    set_correlation_id(execution_id)

    if ctx.dry_run:
        output_json({
            "status": "dry_run",
            "message": "Would fetch and emit every item",
            "executionId": execution_id,
            "source": source,
            "sourceKey": source_key,
            "options": options,
        })
        return

    driver = ctx.driver(source, profile)
    ctx.index.register(execution_id, source, source_key, options, profile)

    async def _drain() -> list[Emission]:
        emitted = []
        async for emission in driver.drain(execution_id, source_key, options):
            click.echo(json.dumps(emission.to_dict(), default=str))
            emitted.append(emission)
        return emitted

    emissions = asyncio.run(_drain())
    ctx.logger.info("drain_completed", emissions=len(emissions), stats=driver.stats.to_dict())
    sys.exit(exit_code_for(emissions))


@cli.command()
@click.argument("execution_id", required=False)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format",
)
@pass_context
def status(ctx: Context, execution_id: Optional[str], output_format: str) -> None:
    """Show stored execution state."""
    entries = ctx.index.all()

    if execution_id:
        ids = [execution_id]
    else:
        ids = ctx.store.list_ids()

    summaries = []
    for eid in ids:
        state = ctx.store.load(eid)
        if state is None:
            if execution_id:
                fail(f"Execution not found: {eid}", ExitCode.EXECUTION_NOT_FOUND)
            continue
        summaries.append(state_summary(eid, state, entries.get(eid)))

    if output_format == "json":
        output_json(summaries[0] if execution_id else summaries)
        return

    click.echo("ingestloop executions")
    click.echo("=" * 40)
    if not summaries:
        click.echo("No stored executions")
    for summary in summaries:
        progress = f"{summary['currentIndex']}/{summary['totalItems']}"
        line = f"{summary['executionId']}  {summary['source'] or '-'}  {summary['phase']}  {progress}"
        if summary["error"]:
            line += f"  error: {summary['error']}"
        click.echo(line)


@cli.command()
@click.argument("execution_id", required=False)
@click.option("--all", "clean_all", is_flag=True, help="Clean every stored execution")
@pass_context
def clean(ctx: Context, execution_id: Optional[str], clean_all: bool) -> None:
    """Delete stored execution state."""
    if not execution_id and not clean_all:
        raise click.UsageError("Give an EXECUTION_ID or --all")

    targets = ctx.store.list_ids() if clean_all else [execution_id]

    if ctx.dry_run:
        output_json({
            "status": "dry_run",
            "message": "Would delete stored state",
            "executions": targets,
        })
        return

    cleaned = 0
    for eid in targets:
        if ctx.store.delete(eid):
            cleaned += 1
        ctx.index.remove(eid)

    if clean_all:
        ctx.index.clear()

    if execution_id and not clean_all and cleaned == 0:
        fail(f"Execution not found: {execution_id}", ExitCode.EXECUTION_NOT_FOUND)

    output_json({
        "status": "success",
        "cleaned": cleaned,
    })


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except Exception as e:
        logger = get_logger("cli")
        logger.error("cli_error", error=str(e))
        sys.exit(ExitCode.GENERAL_ERROR)


if __name__ == "__main__":
    main()
