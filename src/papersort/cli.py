"""Command-line interface for papersort.

Provides commands for configuration validation and for classifying a batch
of scanned exam papers into subject buckets.

Usage:
    python -m papersort validate-config
    python -m papersort subjects
    python -m papersort classify scans/ --output sorted.yaml
"""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
import yaml
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from papersort.config import get_config, load_config, validate_config_file
from papersort.core.errors import ConfigLoadError, ConfigValidationError, RecognizerError
from papersort.core.logging import configure_logging, configure_logging_from_config

if TYPE_CHECKING:
    from papersort.config_schema import AppConfig
    from papersort.engine.pipeline import ClassificationPipeline, PipelineRunResult
    from papersort.registry.models import RegistrySnapshot

console = Console()


def _load_cli_config(config_path: Path | None) -> AppConfig:
    """Load config for a command, exiting with an actionable message on failure."""
    try:
        return load_config(config_path) if config_path else get_config()
    except (ConfigLoadError, ConfigValidationError) as e:
        console.print(
            f"[red]Config error:[/red] {e}\n\n"
            "Fix the file or run [cyan]papersort validate-config[/cyan] for details."
        )
        sys.exit(1)


config_option = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml)",
)


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """papersort - sort scanned exam papers into subject folders."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    if debug:
        configure_logging(log_level="DEBUG", json_output=False)


def _setup_logging(config: AppConfig) -> None:
    """Apply the configured log settings unless --debug already did."""
    ctx = click.get_current_context()
    if ctx.obj and ctx.obj.get("debug"):
        return
    configure_logging_from_config(config.logging)


@cli.command("validate-config")
@config_option
def validate_config(config_path: Path | None) -> None:
    """Validate the configuration file.

    Checks that config.yaml exists and passes Pydantic schema validation.
    Reports specific errors for invalid fields.
    """
    if config_path:
        console.print(f"Validating config: [cyan]{config_path}[/cyan]")
    else:
        console.print("Validating config: [cyan]config/config.yaml[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


@cli.command("subjects")
@config_option
def subjects(config_path: Path | None) -> None:
    """List the known subjects seeded at the start of every run."""
    config = _load_cli_config(config_path)
    _setup_logging(config)

    if not config.subjects:
        console.print(
            "[yellow]No subjects configured.[/yellow] Buckets will be detected from text."
        )
        return

    table = Table(box=None, padding=(0, 2))
    table.add_column("Code", style="cyan")
    table.add_column("Name")
    for subject in config.subjects:
        table.add_row(subject.code, subject.name)
    console.print(table)


@cli.command("classify")
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, path_type=Path),
)
@config_option
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the resulting buckets to this file",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    help="Output file format",
)
@click.option("--lang", default=None, help="Override the OCR language (e.g. 'eng')")
def classify(
    paths: tuple[Path, ...],
    config_path: Path | None,
    output: Path | None,
    output_format: str,
    lang: str | None,
) -> None:
    """Recognize and sort scanned papers into subject buckets.

    PATHS may be image files or directories of images. Files are processed
    in the order given (directories in name order), which matters: pages
    without a subject header join the subject of the page before them.
    """
    from papersort.engine.pipeline import PipelineState
    from papersort.ocr.tesseract import TesseractRecognizer, images_from_paths

    config = _load_cli_config(config_path)
    _setup_logging(config)
    if lang:
        config = config.model_copy(update={"ocr": config.ocr.model_copy(update={"lang": lang})})

    images = images_from_paths(paths)
    if not images:
        console.print("[yellow]No image files found.[/yellow]")
        sys.exit(1)

    recognizer = TesseractRecognizer.from_config(config.ocr)
    try:
        version = recognizer.check_available()
    except RecognizerError as e:
        console.print(f"[red]OCR error:[/red] {e}")
        sys.exit(1)

    console.print(f"Sorting [cyan]{len(images)}[/cyan] papers (tesseract {version})")

    try:
        result, snapshot = asyncio.run(_run_classify(images, recognizer, config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(130)

    _print_summary(result, snapshot)

    if output:
        _write_snapshot(snapshot, output, output_format)
        console.print(f"\nWrote buckets to [cyan]{output}[/cyan]")

    if result.state is PipelineState.CANCELLED:
        console.print("\n[yellow]Cancelled.[/yellow] Remaining papers were not processed.")
        sys.exit(130)


async def _run_classify(images, recognizer, config: AppConfig):
    """Run the pipeline with a rich progress bar."""
    from papersort.engine.pipeline import ClassificationPipeline
    from papersort.registry.store import BucketRegistry

    pipeline = ClassificationPipeline(BucketRegistry(), recognizer, config)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Reading text...", total=len(images))

        def on_progress(event) -> None:
            progress.update(
                task,
                description=f"{event.index + 1}/{event.total_count} {event.status_label}",
            )
            progress.advance(task)

        pipeline.add_observer(on_progress)
        interruptible = _cancel_on_interrupt(pipeline)
        try:
            result = await pipeline.run(images)
        finally:
            if interruptible:
                asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)

    return result, pipeline.registry.snapshot()


def _cancel_on_interrupt(pipeline: ClassificationPipeline) -> bool:
    """Turn Ctrl-C into a cooperative cancel; the current paper still finishes.

    Returns False where the event loop cannot handle signals (e.g. Windows),
    leaving Ctrl-C to raise KeyboardInterrupt.
    """

    def on_interrupt() -> None:
        console.print("\n[yellow]Stopping after the current paper...[/yellow]")
        pipeline.cancel()

    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError):
        return False
    return True


def _print_summary(result: PipelineRunResult, snapshot: RegistrySnapshot) -> None:
    console.print(f"\n[bold]Classification Summary[/bold] (run {result.run_id[:8]}...)")
    console.print(f"  Duration:    {result.duration_ms}ms")
    console.print(f"  Processed:   {result.processed}/{result.total}")
    console.print(f"  Matched:     {result.matched}")
    console.print(f"  New buckets: {result.created}")
    console.print(f"  Sticky:      {result.sticky}")
    console.print(f"  Unmatched:   {result.unmatched}")
    console.print(f"  Failed:      {result.failed}")

    table = Table(box=None, padding=(0, 2))
    table.add_column("Code", style="cyan")
    table.add_column("Name")
    table.add_column("Papers", justify="right")
    table.add_column("Years")
    for bucket in snapshot:
        if not bucket.count:
            continue
        years = sorted(
            {
                f"{doc.effective_year}{'*' if doc.year_assumed else ''}"
                for doc in bucket.documents
                if doc.effective_year
            },
            reverse=True,
        )
        table.add_row(bucket.code, bucket.display_name, str(bucket.count), ", ".join(years))
    console.print()
    console.print(table)

    for outcome in result.unfiled:
        style = "red" if outcome.outcome == "failed" else "yellow"
        detail = f": {outcome.error}" if outcome.error else ""
        console.print(f"  [{style}]{outcome.outcome}[/{style}] {outcome.display_name}{detail}")


def _write_snapshot(snapshot: RegistrySnapshot, output: Path, output_format: str) -> None:
    from papersort.registry.models import snapshot_to_dict

    data = snapshot_to_dict(snapshot)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        if output_format == "json":
            json.dump(data, f, indent=2)
        else:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
