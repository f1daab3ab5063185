"""Learning path tables.

Each JSON file under ``path`` holds the rows of the table named by its stem.
A row's ``json`` column is a nested document whose id references are located
with ``a->b`` paths configured under ``checks``::

    "checks": {
        "check_courses_exists":   {"json->tree->nodes": {"data->course_node_id": true}},
        "check_component_exists": {"json->tree->nodes": {"completion->nodes": "data->value"}},
        "check_table_exists": true,
        "check_path_exists": true
    }

For components the value found at the inner path is an object whose keys
name the registry namespace (``testid``, ``quizid``, ...) of each reference.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

import orjson
import structlog

from Recipeweaver import repos
from Recipeweaver.context import ExecutionContext
from Recipeweaver.installers.base import AssetInstaller
from Recipeweaver.json_path import MISSING, JsonPath
from Recipeweaver.recipe import AssetType

log = structlog.get_logger()

DEFAULT_ACTIVITY_TABLE = "learning_path_activities"


class _Unsupported(Exception):
    pass


class LearningPathsInstaller(AssetInstaller):
    asset_type = AssetType.LEARNINGPATHS

    def __init__(self, recipe):
        super().__init__(recipe)
        self.update = False
        self.table = ""
        self._checks: dict[str, Callable[..., Coroutine[Any, Any, None]]] = {
            "check_component_exists": self.check_component_exists,
            "check_courses_exists": self.check_courses_exists,
            "check_table_exists": self.check_table_exists,
            "check_path_exists": self.check_path_exists,
        }

    async def check(self, root: Path, ctx: ExecutionContext) -> None:
        self.update = False
        await self.run_recipe(root, ctx)

    async def execute(self, root: Path, ctx: ExecutionContext) -> None:
        self.update = True
        await self.run_recipe(root, ctx)

    def _rows(self, file: Path) -> list[dict[str, Any]] | None:
        try:
            data = orjson.loads(file.read_bytes())
        except (orjson.JSONDecodeError, OSError):
            self.error(file.stem, f"Learning path file {file.name} is not valid JSON")
            return None
        if not isinstance(data, list):
            self.error(file.stem, f"Learning path file {file.name} must hold a list of rows")
            return None
        return [row for row in data if isinstance(row, dict)]

    async def run_recipe(self, root: Path, ctx: ExecutionContext) -> None:
        for file in self.files(root, "*.json"):
            self.table = file.stem
            rows = self._rows(file)
            if rows is None:
                continue
            for index, row in enumerate(rows):
                name = str(row.get("name") or f"{self.table}#{index}")
                if isinstance(row.get("json"), (str, bytes)):
                    try:
                        row["json"] = orjson.loads(row["json"])
                    except orjson.JSONDecodeError:
                        self.error(name, "Learning path json column is not valid JSON")
                        continue
                for check_name, properties in (self.setting("checks") or {}).items():
                    runner = self._checks.get(check_name)
                    if runner is None:
                        log.warning("installer.learningpath.unknown_check", check=check_name)
                        continue
                    await runner(properties, row, name, ctx)

                if not self.update:
                    self.success(name, f"Learning path {name} found")
                elif not self.has_issues(name):
                    await self.insert_learning_path(row, name, ctx)

    async def insert_learning_path(self, row: dict[str, Any], name: str, ctx: ExecutionContext) -> None:
        old_id = row.pop("id", None)
        record = dict(row)
        if isinstance(record.get("json"), (dict, list)):
            record["json"] = orjson.dumps(record["json"]).decode()
        new_id = await repos.insert_row(ctx.session, self.table, record)
        if old_id is not None:
            self.matchingids.put("learningpaths", old_id, new_id)
            await self.update_activity_ids(old_id, new_id, name, ctx)
        log.info("installer.learningpath.inserted", table=self.table, name=name, id=new_id)
        self.success(name, f"Learning path {name} installed")

    async def update_activity_ids(self, old_id: Any, new_id: int, name: str, ctx: ExecutionContext) -> None:
        """Re-point activities that still reference the exported learning path id."""
        table = self.setting("activitytable") or DEFAULT_ACTIVITY_TABLE
        updated = await repos.update_rows(
            ctx.session, table, {"learningpathid": old_id}, {"learningpathid": new_id}
        )
        if not updated:
            self.warning(name, f"No activity references learning path {name}")

    # --- checks ---

    async def check_courses_exists(self, properties: Any, row: dict, name: str, ctx: ExecutionContext) -> None:
        missing: list[str] = []
        for outer, inner in _pairs(properties):
            for node in _as_list(JsonPath.parse(outer).get(row)):
                for inner_path in _keys(inner):
                    path = JsonPath.parse(inner_path)
                    value = path.get(node)
                    if value is MISSING:
                        continue
                    resolved = self.resolve_reference(value, "courses", missing, name, ctx)
                    if self.update:
                        path.set(node, resolved)
        if missing:
            self.error(name, f"Missing courses: {', '.join(dict.fromkeys(missing))}")

    async def check_component_exists(
        self, properties: Any, row: dict, name: str, ctx: ExecutionContext
    ) -> None:
        missing: list[str] = []
        for outer, inner in _pairs(properties):
            for node in _as_list(JsonPath.parse(outer).get(row)):
                for list_path, value_path in _pairs(inner):
                    for completion in _as_list(JsonPath.parse(list_path).get(node)):
                        target = JsonPath.parse(str(value_path))
                        refs = target.get(completion)
                        if not isinstance(refs, dict):
                            continue
                        for namespace, value in refs.items():
                            refs[namespace] = self.resolve_reference(value, namespace, missing, name, ctx)
                        if self.update:
                            target.set(completion, refs)
        if missing:
            self.error(name, f"Missing components: {', '.join(dict.fromkeys(missing))}")

    async def check_table_exists(self, properties: Any, row: dict, name: str, ctx: ExecutionContext) -> None:
        if not await repos.table_exists(ctx.session, self.table):
            self.warning(name, f"Table {self.table} does not exist")

    async def check_path_exists(self, properties: Any, row: dict, name: str, ctx: ExecutionContext) -> None:
        if await repos.record_exists(ctx.session, self.table, {"name": row.get("name")}):
            self.error(name, f"Learning path {name} already exists in {self.table}")

    def resolve_reference(
        self, data: Any, namespace: str, missing: list[str], name: str, ctx: ExecutionContext
    ) -> Any:
        """Map ``data`` through ``namespace``; unknown ids are appended to ``missing``.

        Accepts a list of ids, a single id, or ``{"parent": {"id": ...}}``.
        Returns the rewritten value (unchanged where nothing resolved).
        """
        try:
            return self._resolve(data, namespace, missing, ctx)
        except _Unsupported:
            self.error(name, f"Reference {data!r} has an unsupported shape")
            return data

    def _resolve(self, data: Any, namespace: str, missing: list[str], ctx: ExecutionContext) -> Any:
        if isinstance(data, list):
            return [self._resolve_scalar(item, namespace, missing, ctx) for item in data]
        if isinstance(data, dict):
            parent = data.get("parent")
            if not isinstance(parent, dict) or "id" not in parent:
                raise _Unsupported
            parent["id"] = self._resolve_scalar(parent["id"], namespace, missing, ctx)
            return data
        return self._resolve_scalar(data, namespace, missing, ctx)

    def _resolve_scalar(self, value: Any, namespace: str, missing: list[str], ctx: ExecutionContext) -> Any:
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise _Unsupported
        new = self.lookup(ctx, namespace, value)
        if new is None:
            missing.append(str(value))
            return value
        # keep the exported representation (string ids stay strings)
        return str(new) if isinstance(value, str) else new

    # --- resume ---

    async def rebuild_matchingids(self, root: Path, ctx: ExecutionContext) -> None:
        for file in self.files(root, "*.json"):
            try:
                rows = orjson.loads(file.read_bytes())
            except (orjson.JSONDecodeError, OSError):
                continue
            for row in rows if isinstance(rows, list) else []:
                if not isinstance(row, dict) or row.get("id") is None or not row.get("name"):
                    continue
                found = await repos.fetch_rows(ctx.session, file.stem, {"name": row["name"]})
                if found:
                    self.matchingids.put("learningpaths", row["id"], found[0]["id"])


def _pairs(properties: Any) -> list[tuple[str, Any]]:
    if isinstance(properties, dict):
        return [(str(k), v) for k, v in properties.items()]
    return []


def _keys(inner: Any) -> list[str]:
    if isinstance(inner, dict):
        return [str(k) for k in inner]
    if isinstance(inner, list):
        return [str(k) for k in inner]
    if isinstance(inner, str):
        return [inner]
    return []


def _as_list(value: Any) -> list[Any]:
    if value is MISSING or value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]
