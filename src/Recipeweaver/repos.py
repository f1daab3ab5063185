# repos.py

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import orjson
import sqlalchemy as sa
import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from Recipeweaver import models
from Recipeweaver.db import Base

log = structlog.get_logger()


# --- Courses and categories ---


async def get_course_by_shortname(s: AsyncSession, shortname: str) -> models.Course | None:
    q = await s.execute(select(models.Course).where(models.Course.shortname == shortname))
    return q.scalar_one_or_none()


async def get_course(s: AsyncSession, course_id: int) -> models.Course | None:
    return await s.get(models.Course, course_id)


async def create_course(
    s: AsyncSession,
    *,
    category: int,
    shortname: str,
    fullname: str,
    visible: bool = False,
) -> models.Course:
    obj = models.Course(category=category, shortname=shortname, fullname=fullname, visible=visible)
    s.add(obj)
    await s.flush()
    return obj


async def delete_course(s: AsyncSession, course_id: int) -> None:
    await s.execute(delete(models.Course).where(models.Course.id == course_id))


async def set_course_visibility(s: AsyncSession, course_id: int, visible: bool) -> None:
    await s.execute(
        update(models.Course).where(models.Course.id == course_id).values(visible=visible)
    )


async def get_category(
    s: AsyncSession, name: str, *, parent: int | None = None
) -> models.CourseCategory | None:
    stmt = select(models.CourseCategory).where(models.CourseCategory.name == name)
    if parent is not None:
        stmt = stmt.where(models.CourseCategory.parent == parent)
    q = await s.execute(stmt.order_by(models.CourseCategory.id).limit(1))
    return q.scalar_one_or_none()


async def create_category(
    s: AsyncSession, name: str, parent: models.CourseCategory | None = None
) -> models.CourseCategory:
    obj = models.CourseCategory(name=name, parent=parent.id if parent else 0)
    s.add(obj)
    await s.flush()
    obj.path = f"{parent.path if parent else ''}/{obj.id}"
    await s.flush()
    return obj


async def delete_category_if_empty(s: AsyncSession, category_id: int) -> bool:
    q = await s.execute(
        select(func.count()).select_from(models.Course).where(models.Course.category == category_id)
    )
    if q.scalar_one():
        return False
    await s.execute(delete(models.CourseCategory).where(models.CourseCategory.id == category_id))
    return True


async def list_course_urls(s: AsyncSession, course_id: int) -> list[models.Url]:
    q = await s.execute(
        select(models.Url).where(models.Url.course == course_id).order_by(models.Url.id)
    )
    return list(q.scalars().all())


async def get_module_id(s: AsyncSession, name: str) -> int | None:
    q = await s.execute(select(models.Module.id).where(models.Module.name == name))
    return q.scalar_one_or_none()


async def get_or_create_module(s: AsyncSession, name: str) -> int:
    module_id = await get_module_id(s, name)
    if module_id is not None:
        return module_id
    obj = models.Module(name=name)
    s.add(obj)
    await s.flush()
    return obj.id


async def get_course_module_id(
    s: AsyncSession, module_name: str, instance_id: Any, course_id: Any
) -> int | None:
    q = await s.execute(
        select(models.CourseModule.id)
        .join(models.Module, models.Module.id == models.CourseModule.module)
        .where(
            models.Module.name == module_name,
            models.CourseModule.instance == int(instance_id),
            models.CourseModule.course == int(course_id),
        )
    )
    return q.scalar_one_or_none()


async def list_exportable_courses(
    s: AsyncSession, activity_tables: tuple[str, ...] = ("adaptivequiz",)
) -> list[dict[str, Any]]:
    """Courses that contain at least one activity of the given types."""
    course_ids: set[int] = set()
    for name in activity_tables:
        table = await get_table(s, name)
        if table is None or "course" not in table.c:
            continue
        q = await s.execute(select(table.c.course).distinct())
        course_ids.update(int(row[0]) for row in q.all())
    if not course_ids:
        return []
    q = await s.execute(
        select(models.Course.id, models.Course.fullname)
        .where(models.Course.id.in_(course_ids))
        .order_by(models.Course.id)
    )
    return [{"id": row.id, "fullname": row.fullname} for row in q.all()]


# --- Config, custom fields, questions, scales ---


async def get_config_value(s: AsyncSession, plugin: str, name: str) -> models.ConfigPlugin | None:
    q = await s.execute(
        select(models.ConfigPlugin).where(
            models.ConfigPlugin.plugin == plugin, models.ConfigPlugin.name == name
        )
    )
    return q.scalar_one_or_none()


async def set_config_value(s: AsyncSession, plugin: str, name: str, value: Any) -> None:
    obj = await get_config_value(s, plugin, name)
    text = value if isinstance(value, str) or value is None else orjson.dumps(value).decode()
    if obj is None:
        s.add(models.ConfigPlugin(plugin=plugin, name=name, value=text))
    else:
        obj.value = text
    await s.flush()


async def get_customfield_category(
    s: AsyncSession, component: str, area: str, name: str
) -> models.CustomFieldCategory | None:
    q = await s.execute(
        select(models.CustomFieldCategory).where(
            models.CustomFieldCategory.component == component,
            models.CustomFieldCategory.area == area,
            models.CustomFieldCategory.name == name,
        )
    )
    return q.scalars().first()


async def create_customfield_category(
    s: AsyncSession, component: str, area: str, name: str
) -> models.CustomFieldCategory:
    obj = models.CustomFieldCategory(component=component, area=area, name=name)
    s.add(obj)
    await s.flush()
    return obj


async def get_customfield(s: AsyncSession, shortname: str) -> models.CustomField | None:
    q = await s.execute(select(models.CustomField).where(models.CustomField.shortname == shortname))
    return q.scalar_one_or_none()


async def create_customfield(
    s: AsyncSession, category_id: int, definition: Mapping[str, Any]
) -> models.CustomField:
    obj = models.CustomField(
        categoryid=category_id,
        shortname=str(definition["shortname"]),
        name=str(definition.get("name") or definition["shortname"]),
        type=str(definition.get("type") or "text"),
        description=definition.get("description"),
        configdata=dict(definition.get("configdata") or {}),
    )
    s.add(obj)
    await s.flush()
    return obj


async def count_questions(s: AsyncSession) -> int:
    q = await s.execute(select(func.count()).select_from(models.Question))
    return int(q.scalar_one())


async def get_scale_id_by_name(s: AsyncSession, name: str) -> int | None:
    q = await s.execute(
        select(models.CatScale.id).where(models.CatScale.name == name).order_by(models.CatScale.id)
    )
    return q.scalars().first()


# --- Install progress and run history ---


async def get_progress(s: AsyncSession, fingerprint: str) -> models.InstallProgress | None:
    q = await s.execute(
        select(models.InstallProgress).where(models.InstallProgress.fingerprint == fingerprint)
    )
    return q.scalar_one_or_none()


async def create_progress(
    s: AsyncSession, *, fingerprint: str, filename: str, user_id: str, max_step: int
) -> models.InstallProgress:
    obj = models.InstallProgress(
        fingerprint=fingerprint,
        filename=filename,
        user_id=user_id,
        current_step=0,
        max_step=max_step,
    )
    s.add(obj)
    await s.flush()
    return obj


async def delete_progress(s: AsyncSession, fingerprint: str) -> None:
    await s.execute(
        delete(models.InstallProgress).where(models.InstallProgress.fingerprint == fingerprint)
    )


async def latest_run(
    s: AsyncSession, *, filename: str | None = None, fingerprint: str | None = None
) -> models.InstallRun | None:
    stmt = select(models.InstallRun)
    if filename is not None:
        stmt = stmt.where(models.InstallRun.filename == filename)
    if fingerprint is not None:
        stmt = stmt.where(models.InstallRun.fingerprint == fingerprint)
    q = await s.execute(stmt.order_by(models.InstallRun.id.desc()).limit(1))
    return q.scalar_one_or_none()


async def create_run(
    s: AsyncSession, *, filename: str, fingerprint: str, user_id: str
) -> models.InstallRun:
    obj = models.InstallRun(filename=filename, fingerprint=fingerprint, user_id=user_id)
    s.add(obj)
    await s.flush()
    return obj


# --- Generic access to recipe-named tables ---


async def table_exists(s: AsyncSession, name: str) -> bool:
    def _has(sync_session) -> bool:
        return sa.inspect(sync_session.connection()).has_table(name)

    return await s.run_sync(_has)


async def get_table(s: AsyncSession, name: str) -> sa.Table | None:
    """Table object for ``name``: mapped metadata first, reflection otherwise."""
    if not await table_exists(s, name):
        return None
    known = Base.metadata.tables.get(name)
    if known is not None:
        return known

    def _reflect(sync_session) -> sa.Table:
        return sa.Table(name, sa.MetaData(), autoload_with=sync_session.connection())

    return await s.run_sync(_reflect)


def _coerce(column: sa.Column, value: Any) -> Any:
    if isinstance(value, (dict, list)) and not isinstance(column.type, sa.JSON):
        return orjson.dumps(value).decode()
    return value


def _conditions(table: sa.Table, conditions: Mapping[str, Any]) -> list[Any]:
    return [table.c[k] == _coerce(table.c[k], v) for k, v in conditions.items() if k in table.c]


async def insert_row(s: AsyncSession, table_name: str, values: Mapping[str, Any]) -> int:
    """Insert ``values`` keeping only columns the table has; returns the new id."""
    table = await get_table(s, table_name)
    if table is None:
        raise LookupError(f"table {table_name} does not exist")
    row = {
        k: _coerce(table.c[k], v)
        for k, v in values.items()
        if k in table.c and not (k == "id" and table.c[k].primary_key)
    }
    result = await s.execute(table.insert().values(**row))
    new_id = result.inserted_primary_key[0] if result.inserted_primary_key else None
    log.debug("repos.row.inserted", table=table_name, id=new_id)
    return int(new_id) if new_id is not None else 0


async def fetch_rows(
    s: AsyncSession, table_name: str, conditions: Mapping[str, Any]
) -> list[dict[str, Any]]:
    table = await get_table(s, table_name)
    if table is None:
        return []
    stmt = select(table).where(*_conditions(table, conditions))
    if "id" in table.c:
        stmt = stmt.order_by(table.c.id)
    q = await s.execute(stmt)
    return [dict(row) for row in q.mappings().all()]


async def record_exists(s: AsyncSession, table_name: str, conditions: Mapping[str, Any]) -> bool:
    table = await get_table(s, table_name)
    if table is None:
        return False
    clauses = _conditions(table, conditions)
    if not clauses:
        return False
    q = await s.execute(select(sa.literal(1)).select_from(table).where(*clauses).limit(1))
    return q.first() is not None


async def update_rows(
    s: AsyncSession, table_name: str, conditions: Mapping[str, Any], values: Mapping[str, Any]
) -> int:
    table = await get_table(s, table_name)
    if table is None:
        return 0
    clauses = _conditions(table, conditions)
    if not clauses:
        return 0
    row = {k: _coerce(table.c[k], v) for k, v in values.items() if k in table.c}
    result = await s.execute(update(table).where(*clauses).values(**row))
    return int(result.rowcount or 0)


async def list_instance_ids(s: AsyncSession, table_name: str, course_id: int) -> list[int] | None:
    """Instance ids of an activity table in creation order; None when the table is absent."""
    table = await get_table(s, table_name)
    if table is None or "course" not in table.c:
        return None
    q = await s.execute(
        select(table.c.id).where(table.c.course == course_id).order_by(table.c.id)
    )
    return [int(row[0]) for row in q.all()]


async def fetch_one_sql(s: AsyncSession, sql: str, params: Mapping[str, Any]) -> dict[str, Any] | None:
    """Run a recipe-supplied SELECT with named binds and return the first row."""
    q = await s.execute(sa.text(sql), dict(params))
    row = q.mappings().first()
    return dict(row) if row is not None else None
