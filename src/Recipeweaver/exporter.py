"""Course export for recipe authoring.

Selected courses are widened with the courses their adaptive tests point at
through ``catquiz_courses_*`` keys; each resulting course gets one backup
written by the platform's backup command.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import orjson
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from Recipeweaver import repos
from Recipeweaver.config import Settings
from Recipeweaver.errors import ExportError
from Recipeweaver.host.interfaces import ProcessRunner

log = structlog.get_logger()

RELATED_PREFIX = "catquiz_courses_"
TESTS_TABLE = "cat_tests"


def extract_related_courses(values: Iterable[Any]) -> list[Any]:
    """Course ids listed under ``catquiz_courses_*`` keys of test json columns."""
    related: list[Any] = []
    for value in values:
        tree = value
        if isinstance(value, (str, bytes)):
            try:
                tree = orjson.loads(value)
            except orjson.JSONDecodeError:
                continue
        if not isinstance(tree, dict):
            continue
        for key, ids in tree.items():
            if key.startswith(RELATED_PREFIX):
                related.extend(ids if isinstance(ids, list) else [ids])
    return related


async def related_courses(s: AsyncSession, course_id: int) -> list[Any]:
    rows = await repos.fetch_rows(s, TESTS_TABLE, {"courseid": course_id})
    return extract_related_courses(row.get("json") for row in rows)


async def collect_courses(s: AsyncSession, course_ids: Iterable[int]) -> list[int]:
    """Selected ids followed by their related courses, without repeats."""
    selected = list(course_ids)
    candidates: list[Any] = list(selected)
    for course_id in selected:
        candidates.extend(await related_courses(s, course_id))

    out: list[int] = []
    for candidate in candidates:
        try:
            course_id = int(candidate)
        except (TypeError, ValueError):
            log.warning("exporter.related_course.invalid", value=candidate)
            continue
        if course_id not in out:
            out.append(course_id)
    return out


@dataclass
class ExportResult:
    backups: dict[int, Path] = field(default_factory=dict)
    errors: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "backups": {str(k): str(v) for k, v in self.backups.items()},
            "errors": {str(k): v for k, v in self.errors.items()},
        }


class CourseExporter:
    def __init__(self, settings: Settings, runner: ProcessRunner):
        self.settings = settings
        self.runner = runner

    async def export(
        self, s: AsyncSession, course_ids: Iterable[int], destination: Path | None = None
    ) -> ExportResult:
        """Write ``backup_course_<id>.mbz`` for every selected and related course.

        Raises:
            ExportError: no backup command is configured or it cannot be found
        """
        command = self.settings.backup_command
        if not command or not self.runner.available(command[0]):
            raise ExportError("No platform backup command is available")
        target = Path(destination or self.settings.export_dir).resolve()
        target.mkdir(parents=True, exist_ok=True)

        result = ExportResult()
        for course_id in await collect_courses(s, course_ids):
            backup = target / f"backup_course_{course_id}.mbz"
            done = self.runner.run(
                [*command, f"--courseid={course_id}", f"--destination={backup}"],
                cwd=Path(self.settings.platform_root),
            )
            if done.returncode != 0:
                log.warning("exporter.backup.failed", course_id=course_id, returncode=done.returncode)
                result.errors[course_id] = done.output or f"exit code {done.returncode}"
                continue
            result.backups[course_id] = backup
        log.info(
            "exporter.finished",
            destination=str(target),
            backups=len(result.backups),
            errors=len(result.errors),
        )
        return result
