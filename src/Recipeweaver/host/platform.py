"""Database-backed config store and custom-field handlers."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from Recipeweaver import repos


class DatabaseConfigStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_config(self, plugin: str, key: str) -> str | None:
        row = await repos.get_config_value(self.session, plugin, key)
        return None if row is None else (row.value if row.value is not None else "")

    async def set_config(self, plugin: str, key: str, value: Any) -> None:
        await repos.set_config_value(self.session, plugin, key, value)


class DatabaseFieldHandler:
    def __init__(self, session: AsyncSession, component: str, area: str):
        self.session = session
        self.component = component
        self.area = area

    async def create_category(self, name: str) -> int:
        existing = await repos.get_customfield_category(self.session, self.component, self.area, name)
        if existing is not None:
            return existing.id
        created = await repos.create_customfield_category(
            self.session, self.component, self.area, name
        )
        return created.id

    async def save_field(self, category_id: int, definition: Mapping[str, Any]) -> int:
        field = await repos.create_customfield(self.session, category_id, definition)
        return field.id


class DatabaseFieldHandlerFactory:
    def __init__(self, session: AsyncSession):
        self.session = session

    def handler_for(self, component: str, area: str) -> DatabaseFieldHandler:
        return DatabaseFieldHandler(self.session, component, area)
