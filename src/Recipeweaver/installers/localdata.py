"""Local data rows (CSV scale matchers and JSON table dumps).

CSV files are processed first: each row names an exported scale (``id``,
``name``) and is matched by name against the installed scales, producing
the ``catscales`` namespace. JSON files follow; every file is a dump of the
table named by its stem, and each row is re-pointed at the installed
course, activity and scale before it is inserted.

Section keys::

    path        directory of the files inside the package
    matcher     CSV options: delimiter_name, encoding
    translator  sql               SELECT run with :componentid for each row
                changingcolumn    column -> {"nested": bool, "keys": [prefix, ...]}
                changingcourseids key prefix whose values are course id lists
                duplicatecheck    columns that identify an existing row
"""

from __future__ import annotations

import csv
import io
import re
from pathlib import Path
from typing import Any

import orjson
import structlog

from Recipeweaver import repos
from Recipeweaver.context import ExecutionContext
from Recipeweaver.host.importers import delimiter_for
from Recipeweaver.installers.base import AssetInstaller
from Recipeweaver.recipe import AssetType

log = structlog.get_logger()

_COURSE_LINK = re.compile(r"(?P<host>https?://[^/\s\"'<>]+/)?course/view\.php\?id=(?P<id>\d+)")
_FALLBACK_ENTITY = "local_data"


class _RowAborted(Exception):
    """A required reference of a row cannot be resolved."""


class LocalDataInstaller(AssetInstaller):
    asset_type = AssetType.LOCALDATA

    def __init__(self, recipe):
        super().__init__(recipe)
        self.uploaddata = True

    @property
    def translator(self) -> dict[str, Any]:
        return self.setting("translator") or {}

    @property
    def changing_columns(self) -> dict[str, Any]:
        return self.translator.get("changingcolumn") or {}

    # --- check ---

    async def check(self, root: Path, ctx: ExecutionContext) -> None:
        for file in self.files(root, "*.csv"):
            await self.process_csv_file(file, ctx, report=True)
            self.success(file.stem, f"Local data file {file.stem} found")
        for file in self.files(root, "*.json"):
            rows = self._load_rows(file)
            if rows is None:
                continue
            self.preload_ids(rows)
            self.success(file.stem, f"Local data file {file.stem} found")

    def preload_ids(self, rows: list[dict[str, Any]]) -> None:
        """Identity mappings so sibling checks can resolve ids before any install."""
        for row in rows:
            if row.get("id") is not None:
                self.matchingids.put("testid", row["id"], row["id"])
            if row.get("componentid") is not None:
                self.matchingids.put("componentid", row["componentid"], row["componentid"])
            if row.get("courseid") is not None:
                self.matchingids.put("testid_courseid", row["courseid"], row["courseid"])

    # --- execute ---

    async def execute(self, root: Path, ctx: ExecutionContext) -> None:
        for file in self.files(root, "*.csv"):
            await self.process_csv_file(file, ctx, report=True)
        for file in self.files(root, "*.json"):
            await self.upload_json_file(file, ctx)

    def _load_rows(self, file: Path) -> list[dict[str, Any]] | None:
        try:
            data = orjson.loads(file.read_bytes())
        except (orjson.JSONDecodeError, OSError):
            self.error(file.stem, f"Local data file {file.name} is not valid JSON")
            return None
        if not isinstance(data, list) or not all(isinstance(r, dict) for r in data):
            self.error(file.stem, f"Local data file {file.name} must hold a list of rows")
            return None
        return data

    async def process_csv_file(self, file: Path, ctx: ExecutionContext, *, report: bool) -> None:
        """Match exported scales to installed ones by name into ``catscales``."""
        options = self.setting("matcher") or {}
        entity = file.stem
        try:
            text = file.read_bytes().decode(options.get("encoding") or "utf-8-sig")
        except (OSError, UnicodeDecodeError, LookupError):
            if report:
                self.error(entity, f"CSV file {file.name} is not readable")
            return
        reader = csv.DictReader(io.StringIO(text), delimiter=delimiter_for(options.get("delimiter_name")))
        headers = [h.strip() for h in (reader.fieldnames or [])]
        if "id" not in headers or "name" not in headers:
            if report:
                self.error(entity, f"CSV file {file.name} needs the columns id and name")
            return
        reader.fieldnames = headers
        for line, row in enumerate(reader, start=2):
            old_id = (row.get("id") or "").strip()
            name = (row.get("name") or "").strip()
            if not old_id or not name:
                if report:
                    self.error(entity, f"Line {line} of {file.name} is missing id or name")
                continue
            scale_id = await repos.get_scale_id_by_name(ctx.session, name)
            if scale_id is None:
                if report:
                    self.error(entity, f"Scale {name} is not installed")
                continue
            self.matchingids.put("catscales", old_id, scale_id)

    async def upload_json_file(self, file: Path, ctx: ExecutionContext) -> None:
        table = file.stem
        rows = self._load_rows(file)
        if rows is None:
            return
        if not await repos.table_exists(ctx.session, table):
            self.error(table, f"Table {table} does not exist")
            return
        for row in rows:
            self.uploaddata = True
            try:
                record = await self.translate_row(row, table, ctx)
            except _RowAborted as e:
                self.error(table, str(e))
                # Remaining rows of this file would fail the same way
                break
            if await self.duplicatecheck(table, record, ctx):
                self.warning(table, f"Row already present in {table}; skipped")
                continue
            if not self.uploaddata:
                self.error(table, f"Row of {table} references unknown ids; not inserted")
                continue
            new_id = await repos.insert_row(ctx.session, table, record)
            if row.get("id") is not None:
                self.matchingids.put("testid", row["id"], new_id)
            self.success(table, f"Row inserted into {table}")

    async def translate_row(self, row: dict[str, Any], table: str, ctx: ExecutionContext) -> dict[str, Any]:
        component = str(row.get("component") or "")
        modulename = component.split("_", 1)[1] if "_" in component else component
        namespace = ctx.settings.activity_namespaces.get(modulename, "components")

        course_id = self.lookup(ctx, "courses", row.get("courseid"))
        if course_id is None:
            raise _RowAborted(f"Course {row.get('courseid')} of {table} was not installed")
        component_id = self.lookup(ctx, namespace, row.get("componentid"))
        if component_id is None:
            raise _RowAborted(f"Activity {row.get('componentid')} of {table} was not installed")

        sql = self.translator.get("sql")
        if sql:
            newdata = await repos.fetch_one_sql(ctx.session, sql, {"componentid": component_id})
            if newdata is None:
                raise _RowAborted(f"No activity found for component {component_id}")
        else:
            newdata = {"componentid": component_id, "courseid": course_id}

        scale_id = None
        if "catscaleid" in row:
            scale_id = self.lookup(ctx, "catscales", row.get("catscaleid"))
            if scale_id is None:
                raise _RowAborted(f"Scale {row.get('catscaleid')} of {table} was not matched")
            newdata["catscaleid"] = scale_id

        module_id = await repos.get_module_id(ctx.session, modulename) if modulename else None
        course_module_id = 0
        if modulename and newdata.get("componentid") is not None:
            course_module_id = await repos.get_course_module_id(
                ctx.session, modulename, newdata["componentid"], newdata.get("courseid", course_id)
            ) or 0

        record: dict[str, Any] = {}
        for key, value in row.items():
            rule = self.changing_columns.get(key)
            if rule is not None:
                if key in newdata:
                    record[key] = newdata[key]
                elif isinstance(rule, dict) and rule.get("nested"):
                    record[key] = self.update_nested_json(
                        value, scale_id, rule.get("keys") or [], module_id, course_module_id, ctx, table
                    )
                else:
                    record[key] = value
            elif key != "id":
                record[key] = value
        return record

    async def duplicatecheck(self, table: str, record: dict[str, Any], ctx: ExecutionContext) -> bool:
        fields = self.translator.get("duplicatecheck")
        if not table or not record or not fields:
            return False
        conditions = {f: record[f] for f in fields if f in record}
        if not conditions:
            return False
        return await repos.record_exists(ctx.session, table, conditions)

    # --- nested JSON translation ---

    def scale_matcher(
        self, tree: dict[str, Any], keys: list[str], ctx: ExecutionContext, entity: str
    ) -> dict[str, Any] | None:
        """Old -> installed scale ids referenced by ``<prefix>_<oldId>[_<suffix>]`` keys.

        Reads ``catscales`` only. Returns None (and blocks the upload) when a
        referenced scale is unknown.
        """
        matcher: dict[str, Any] = {}
        patterns = [re.compile(rf"^{re.escape(prefix)}_(\d+)(?:_.*)?$") for prefix in keys]
        for key in tree:
            for pattern in patterns:
                m = pattern.match(key)
                if not m:
                    continue
                old = m.group(1)
                new = self.lookup(ctx, "catscales", old)
                if new is None:
                    self.error(entity, f"Scale {old} referenced in nested data was not matched")
                    self.uploaddata = False
                    return None
                matcher[old] = new
                break
        return matcher

    def update_nested_json(
        self,
        value: Any,
        scale_id: Any,
        keys: list[str],
        module_id: Any,
        course_module_id: Any,
        ctx: ExecutionContext,
        entity: str = _FALLBACK_ENTITY,
    ) -> Any:
        as_text = isinstance(value, (str, bytes))
        try:
            tree = orjson.loads(value) if as_text else value
        except orjson.JSONDecodeError:
            self.error(entity, "Nested column is not valid JSON")
            self.uploaddata = False
            return value
        if not isinstance(tree, dict):
            return value

        matcher = self.scale_matcher(tree, keys, ctx, entity)
        if matcher is None:
            return value
        course_prefix = self.translator.get("changingcourseids")
        renamed: dict[str, Any] = {}
        for key in list(tree):
            if key == "catquiz_catscales":
                tree[key] = scale_id
            elif key == "module":
                tree[key] = module_id
            elif key in ("update", "coursemodule"):
                tree[key] = course_module_id
            else:
                for prefix in keys:
                    if not key.startswith(f"{prefix}_"):
                        continue
                    parts = key[len(prefix) + 1 :].split("_", 1)
                    inner = tree.pop(key)
                    if parts[0] in matcher:
                        new_key = f"{prefix}_{matcher[parts[0]]}"
                        if len(parts) > 1:
                            new_key += f"_{parts[1]}"
                        if course_prefix and course_prefix in key:
                            renamed[new_key] = self.course_matching(inner, ctx, entity)
                        else:
                            renamed[new_key] = self.translate_string_links(inner, ctx, entity)
                    break
        tree.update(renamed)
        return orjson.dumps(tree).decode() if as_text else tree

    def course_matching(self, values: Any, ctx: ExecutionContext, entity: str = _FALLBACK_ENTITY) -> list[Any]:
        if not isinstance(values, list):
            values = [values]
        course_ids = []
        for value in values:
            new = self.lookup(ctx, "courses", value)
            if new is not None:
                course_ids.append(new)
                continue
            if self.uploaddata:
                self.error(entity, f"Course {value} referenced in local data was not installed")
            self.uploaddata = False
        return course_ids

    def translate_string_links(self, value: Any, ctx: ExecutionContext, entity: str = _FALLBACK_ENTITY) -> Any:
        """Rewrite embedded course links to installed ids and the current base URL.

        Each link is rewritten once from its original id; unresolved links
        stay byte-for-byte and are reported once per id. Any unresolved link
        keeps the row from being inserted.
        """
        if not isinstance(value, str):
            return value
        unresolved: list[str] = []

        def _swap(m: re.Match) -> str:
            new = self.lookup(ctx, "courses", m.group("id"))
            if new is None:
                if m.group("id") not in unresolved:
                    unresolved.append(m.group("id"))
                return m.group(0)
            if m.group("host"):
                return f"{ctx.base_url}/course/view.php?id={new}"
            return f"course/view.php?id={new}"

        out = _COURSE_LINK.sub(_swap, value)
        for old in unresolved:
            self.error(entity, f"Course {old} linked in local data was not installed")
        if unresolved:
            self.uploaddata = False
        return out

    # --- resume ---

    async def rebuild_matchingids(self, root: Path, ctx: ExecutionContext) -> None:
        for file in self.files(root, "*.csv"):
            await self.process_csv_file(file, ctx, report=False)
        fields = [f for f in (self.translator.get("duplicatecheck") or []) if f not in self.changing_columns]
        if not fields:
            return
        for file in self.files(root, "*.json"):
            try:
                rows = orjson.loads(file.read_bytes())
            except (orjson.JSONDecodeError, OSError):
                continue
            for row in rows if isinstance(rows, list) else []:
                if not isinstance(row, dict) or row.get("id") is None:
                    continue
                if any(f not in row for f in fields):
                    continue
                found = await repos.fetch_rows(ctx.session, file.stem, {f: row[f] for f in fields})
                if found and found[0].get("id") is not None:
                    self.matchingids.put("testid", row["id"], found[0]["id"])
