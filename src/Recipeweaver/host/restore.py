"""Database-backed course restore.

Materialises a backup into the platform tables: the placeholder course takes
over the backup's names and every activity of a supported type becomes an
instance row plus a course-module row. Because the instances are created
here, the restore reports an exact old -> new instance map.
"""

from __future__ import annotations

import uuid
from pathlib import Path

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from Recipeweaver import repos
from Recipeweaver.errors import BackupError
from Recipeweaver.host.backup import (
    activity_folders,
    read_activity_field,
    read_activity_id,
    read_backup_info,
)
from Recipeweaver.host.interfaces import RestoreResult

log = structlog.get_logger()

# Activity types the reference tables can hold; extra columns read from <type>.xml
SUPPORTED_ACTIVITIES: dict[str, tuple[str, ...]] = {
    "adaptivequiz": (),
    "quiz": (),
    "url": ("externalurl",),
}


class DatabaseRestoreService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_placeholder(self, category_id: int) -> int:
        course = await repos.create_course(
            self.session,
            category=category_id,
            shortname=f"temp_{uuid.uuid4().hex[:13]}",
            fullname="Temporary Course Fullname",
            visible=False,
        )
        return course.id

    async def restore(self, backup_dir: Path, course_id: int) -> RestoreResult:
        result = RestoreResult(activity_ids={})
        try:
            info = read_backup_info(backup_dir)
        except BackupError as e:
            result.errors.append(str(e))
            return result

        course = await repos.get_course(self.session, course_id)
        if course is None:
            result.errors.append(f"Target course {course_id} does not exist")
            return result
        clash = await repos.get_course_by_shortname(self.session, info.shortname)
        if clash is not None and clash.id != course_id:
            result.errors.append(f"A course with short name {info.shortname} already exists")
            return result

        course.shortname = info.shortname
        course.fullname = info.fullname or info.shortname
        await self.session.flush()

        listed_types = {a.modulename for a in info.activities}
        for activity_type in sorted(listed_types - SUPPORTED_ACTIVITIES.keys()):
            result.warnings.append(f"Activities of type {activity_type} were not restored")

        titles = {a.directory.rsplit("/", 1)[-1]: a.title for a in info.activities}
        for activity_type, extra_fields in SUPPORTED_ACTIVITIES.items():
            folders = activity_folders(backup_dir, activity_type, info)
            if not folders:
                continue
            module_id = await repos.get_or_create_module(self.session, activity_type)
            for folder in folders:
                old_id = read_activity_id(folder, activity_type)
                values = {
                    "course": course_id,
                    "name": titles.get(folder.name)
                    or read_activity_field(folder, activity_type, "name")
                    or folder.name,
                }
                for name in extra_fields:
                    values[name] = read_activity_field(folder, activity_type, name)
                new_id = await repos.insert_row(self.session, activity_type, values)
                await repos.insert_row(
                    self.session,
                    "course_modules",
                    {"course": course_id, "module": module_id, "instance": new_id},
                )
                if old_id:
                    result.activity_ids[(activity_type, str(old_id))] = new_id

        log.info(
            "restore.course.completed",
            course_id=course_id,
            shortname=info.shortname,
            activities=len(result.activity_ids),
        )
        return result
