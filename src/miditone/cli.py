"""Miditone command line interface."""

import json
import logging
import sys
from pathlib import Path

import typer

from miditone.app import AppContext, count_candidates, dry_run, run_batch
from miditone.batch.processor import MAX_CONCURRENCY
from miditone.config import Settings, get_settings, validate_runtime
from miditone.models.errors import ConfigurationError, MiditoneError

__version__ = "0.1.0"

logger = logging.getLogger("miditone")

app = typer.Typer(
    name="miditone",
    help="Convert MIDI files from MongoDB to normalized MP3 files.",
    add_completion=False,
)


def configure_logging(settings: Settings) -> None:
    """Console logging plus an optional log file."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_file, encoding="utf-8"))
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )


def parse_filter(raw: str | None) -> dict:
    """Parse the --filter JSON object."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Filter must be valid JSON: {e}") from e
    if not isinstance(value, dict):
        raise ConfigurationError("Filter must be a JSON object")
    return value


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"miditone version {__version__}")
        raise typer.Exit()


@app.command()
def run(
    limit: int | None = typer.Option(
        None, "--limit", "-l", min=1, help="Maximum number of MIDI files to process."
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        "-c",
        min=1,
        max=MAX_CONCURRENCY,
        help="Number of parallel pipelines (default from settings).",
    ),
    filter: str | None = typer.Option(
        None, "--filter", "-f", help="MongoDB filter query as a JSON object."
    ),
    dry: bool = typer.Option(
        False, "--dry-run", help="Validate configuration and connectivity, process nothing."
    ),
    stats_only: bool = typer.Option(
        False, "--stats-only", help="Show the number of matching documents and exit."
    ),
    skip_failed: bool = typer.Option(
        False, "--skip-failed", help="Do not retry documents that failed in an earlier run."
    ),
    env_file: Path | None = typer.Option(
        None, "--env-file", help="Load settings from this .env file."
    ),
    version: bool | None = typer.Option(
        None, "--version", "-V", callback=version_callback, is_eager=True, help="Show version."
    ),
) -> None:
    """Convert MIDI documents into normalized, tagged MP3 files."""
    try:
        overrides = {"skip_failed": True} if skip_failed else {}
        if env_file is not None:
            if not env_file.exists():
                raise ConfigurationError(f".env file not found: {env_file}")
            overrides["_env_file"] = env_file
        settings = get_settings(**overrides)
    except ConfigurationError as e:
        typer.secho(f"Error: {e.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from None

    configure_logging(settings)

    try:
        query_filter = parse_filter(filter)
        if not (stats_only or dry):
            validate_runtime(settings)

        with AppContext(settings) as context:
            if dry:
                logger.info("DRY RUN MODE - no files will be written")
                dry_run(context)
                typer.echo("Configuration OK")
                return

            if stats_only:
                count = count_candidates(context, query_filter)
                typer.echo(f"Matching documents: {count}")
                return

            summary = run_batch(context, limit=limit, filter=query_filter, concurrency=concurrency)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        raise typer.Exit(130) from None
    except MiditoneError as e:
        logger.error("Fatal error: %s", e.message)
        raise typer.Exit(1) from None

    typer.echo(summary.model_dump_json(indent=2))
    if summary.failed > 0:
        logger.warning("%d document(s) failed to process", summary.failed)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
