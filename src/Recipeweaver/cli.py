"""Command line entry point.

Examples:
  recipeweaver check ./packages/adaptive-course.zip
  recipeweaver install ./packages/adaptive-course.zip --all-steps
  recipeweaver progress adaptive-course.zip
  recipeweaver export 12 14 --destination ./backups

PACKAGE is either the zip archive itself or a text file holding its base64
(optionally as a ``data:`` URI). Results are printed as JSON.
"""

from __future__ import annotations

import asyncio
import base64
import sys
from pathlib import Path
from typing import Any

import click
import orjson
import structlog

from Recipeweaver import repos
from Recipeweaver.config import Settings, load_settings
from Recipeweaver.db import session_scope
from Recipeweaver.errors import ExportError, ProgressNotFoundError
from Recipeweaver.exporter import CourseExporter, ExportResult
from Recipeweaver.host.process import SubprocessRunner
from Recipeweaver.logging import redact_settings, setup_logging
from Recipeweaver.metrics import get_counters
from Recipeweaver.orchestrator import CheckOrchestrator, InstallOrchestrator
from Recipeweaver.progress import ProgressStore

log = structlog.get_logger()

_ZIP_MAGIC = b"PK\x03\x04"


def read_package(path: Path) -> str:
    raw = path.read_bytes()
    if raw.startswith(_ZIP_MAGIC):
        return base64.b64encode(raw).decode("ascii")
    return raw.decode("ascii", errors="replace")


def _emit(payload: Any) -> None:
    click.echo(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Check and install recipe packages."""
    settings = load_settings()
    setup_logging(settings)
    log.debug("cli.settings", **redact_settings(settings))
    ctx.obj = settings


@cli.command()
@click.argument("package", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def check(settings: Settings, package: Path) -> None:
    """Validate PACKAGE without changing the platform."""
    structlog.contextvars.bind_contextvars(package=package.name)
    result = asyncio.run(CheckOrchestrator(settings).run(read_package(package), package.name))
    _emit(result.to_dict())
    log.debug("cli.metrics", counters=get_counters())


@cli.command()
@click.argument("package", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--optional", "optional", multiple=True, help="Optional plugin URL to install.")
@click.option("--restart", is_flag=True, help="Start again at step 0.")
@click.option("--all-steps", is_flag=True, help="Keep invoking until every step ran.")
@click.pass_obj
def install(
    settings: Settings, package: Path, optional: tuple[str, ...], restart: bool, all_steps: bool
) -> None:
    """Execute the next step of PACKAGE (or all remaining steps)."""
    structlog.contextvars.bind_contextvars(package=package.name)
    orchestrator = InstallOrchestrator(settings)
    blob = read_package(package)
    run = orchestrator.run_all if all_steps else orchestrator.run
    try:
        result = asyncio.run(run(blob, package.name, optional_plugins=optional, restart=restart))
    except ProgressNotFoundError as e:
        raise click.ClickException(str(e)) from e
    _emit(result.to_dict())
    log.debug("cli.metrics", counters=get_counters())
    if result.status >= 3:
        sys.exit(3)


@cli.command()
@click.argument("filename")
def progress(filename: str) -> None:
    """Show progress of the latest install of FILENAME."""

    async def _run() -> dict[str, int]:
        async with session_scope() as s:
            return await ProgressStore(s).latest_run(filename)

    try:
        _emit(asyncio.run(_run()))
    except ProgressNotFoundError as e:
        raise click.ClickException(str(e)) from e


@cli.command("exportable-courses")
def exportable_courses() -> None:
    """List courses that contain adaptive quizzes."""

    async def _run() -> list[dict[str, Any]]:
        async with session_scope() as s:
            return await repos.list_exportable_courses(s)

    _emit(asyncio.run(_run()))


@cli.command()
@click.argument("course_ids", nargs=-1, required=True, type=int)
@click.option(
    "--destination",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for the backups (defaults to export_dir).",
)
@click.pass_obj
def export(settings: Settings, course_ids: tuple[int, ...], destination: Path | None) -> None:
    """Back up COURSE_IDS and every course their adaptive tests reference."""

    async def _run() -> ExportResult:
        async with session_scope() as s:
            return await CourseExporter(settings, SubprocessRunner()).export(s, course_ids, destination)

    try:
        result = asyncio.run(_run())
    except ExportError as e:
        raise click.ClickException(str(e)) from e
    _emit(result.to_dict())
    if result.errors:
        sys.exit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
