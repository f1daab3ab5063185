"""Custom field categories and their fields.

Groups come from the section itself (a list, or ``{"groups": [...]}``) and
from every JSON file under the section's ``path``. A group looks like
``{"name", "component", "area", "fields": [{"shortname", "name", "type", ...}]}``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson

from Recipeweaver import repos
from Recipeweaver.context import ExecutionContext
from Recipeweaver.installers.base import AssetInstaller
from Recipeweaver.recipe import AssetType


class CustomFieldsInstaller(AssetInstaller):
    asset_type = AssetType.CUSTOMFIELDS

    def _groups(self, root: Path) -> list[dict[str, Any]]:
        groups: list[Any] = []
        if isinstance(self.recipe, list):
            groups.extend(self.recipe)
        elif isinstance(self.recipe, dict):
            groups.extend(self.recipe.get("groups") or [])
            if self.recipe.get("path"):
                for file in self.files(root, "*.json"):
                    try:
                        data = orjson.loads(file.read_bytes())
                    except orjson.JSONDecodeError:
                        self.error(file.name, f"{file.name} is not valid JSON")
                        continue
                    groups.extend(data if isinstance(data, list) else [data])
        out = []
        for group in groups:
            if not isinstance(group, dict) or not group.get("name"):
                self.error("customfields", "Custom field group without a name was skipped")
                continue
            out.append(group)
        return out

    async def check(self, root: Path, ctx: ExecutionContext) -> None:
        for group in self._groups(root):
            name = str(group["name"])
            for field in group.get("fields") or []:
                shortname = str(field.get("shortname", ""))
                if await repos.get_customfield(ctx.session, shortname) is not None:
                    self.success(name, f"Custom field {shortname} already exists")
                else:
                    self.success(name, f"New custom field {field.get('name') or shortname} found")

    async def execute(self, root: Path, ctx: ExecutionContext) -> None:
        for group in self._groups(root):
            name = str(group["name"])
            handler = ctx.host.fields.handler_for(
                str(group.get("component", "core_course")), str(group.get("area", "course"))
            )
            try:
                category_id = await handler.create_category(name)
            except Exception as e:
                self.error(name, f"Custom field category {name} could not be created: {e}")
                continue

            for field in group.get("fields") or []:
                shortname = str(field.get("shortname", ""))
                if not shortname:
                    self.error(name, "Custom field without a short name was skipped")
                    continue
                if await repos.get_customfield(ctx.session, shortname) is not None:
                    self.success(name, f"Custom field {shortname} already exists")
                    continue
                try:
                    new_id = await handler.save_field(category_id, field)
                except Exception as e:
                    self.error(name, f"Custom field {shortname} could not be saved: {e}")
                    continue
                self.matchingids.put("customfields", shortname, new_id)
                self.success(name, f"Custom field {field.get('name') or shortname} installed")
