"""Course backups.

Every entry under the section's ``path`` is one backup (``.mbz`` archive or
an already unpacked backup directory). Restores land in a placeholder course
inside a timestamped category below ``course_category_root``. Produces the
``courses`` namespace plus one namespace per activity type listed in
``activity_namespaces``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import structlog

from Recipeweaver import models, repos
from Recipeweaver.context import ExecutionContext
from Recipeweaver.errors import BackupError, RegistryConflictError
from Recipeweaver.host.backup import BackupInfo, extract_backup, original_activity_ids, read_backup_info
from Recipeweaver.host.interfaces import RestoreResult
from Recipeweaver.installers.base import AssetInstaller
from Recipeweaver.recipe import AssetType

log = structlog.get_logger()

COURSE_LINK = "/course/view.php?id="


class CoursesInstaller(AssetInstaller):
    asset_type = AssetType.COURSES

    def __init__(self, recipe):
        super().__init__(recipe)
        self.timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d_%H-%M-%S")
        self._category: models.CourseCategory | None = None

    def backups(self, root: Path) -> list[Path]:
        return [p for p in self.files(root) if p.is_dir() or p.suffix.lower() in (".mbz", ".zip", ".gz", ".tgz")]

    def _unpack(self, backup: Path, ctx: ExecutionContext) -> tuple[Path, BackupInfo]:
        target = ctx.scratch_dir("courses", backup.stem) if backup.is_file() else backup
        backup_dir = extract_backup(backup, target)
        return backup_dir, read_backup_info(backup_dir)

    async def _precheck(self, backup: Path, ctx: ExecutionContext) -> tuple[Path, BackupInfo] | None:
        try:
            backup_dir, info = self._unpack(backup, ctx)
        except BackupError as e:
            log.warning("installer.course.unreadable", backup=backup.name, error=str(e))
            self.error(backup.name, f"Could not extract course backup {backup.name}")
            return None
        if not info.shortname or not info.original_course_id:
            self.error(backup.name, f"No course short name or id found in {backup.name}")
            return None
        return backup_dir, info

    # --- check ---

    async def check(self, root: Path, ctx: ExecutionContext) -> None:
        # short name -> id the first backup of that name would be installed as
        planned: dict[str, str] = {}
        for backup in self.backups(root):
            prechecked = await self._precheck(backup, ctx)
            if prechecked is None:
                continue
            backup_dir, info = prechecked
            existing = await repos.get_course_by_shortname(ctx.session, info.shortname)
            try:
                if existing is None and info.shortname in planned:
                    self.matchingids.put(
                        "courses", info.original_course_id, planned[info.shortname]
                    )
                    self.warning(
                        info.shortname,
                        f"Course {info.shortname} already exists; the existing course will be used",
                    )
                    continue
                if existing is not None:
                    self.matchingids.put("courses", info.original_course_id, existing.id)
                    self.warning(
                        info.shortname,
                        f"Course {info.shortname} already exists; the existing course will be used",
                    )
                else:
                    self.matchingids.put("courses", info.original_course_id, info.original_course_id)
                    planned[info.shortname] = info.original_course_id
                    self.success(info.shortname, f"New course {info.shortname} found")
                for activity_type, namespace in ctx.settings.activity_namespaces.items():
                    for old_id in original_activity_ids(backup_dir, activity_type, info):
                        self.matchingids.put(namespace, old_id, old_id)
            except RegistryConflictError as e:
                self.error(info.shortname, f"Conflicting ids in {backup.name}: {e}")

    # --- execute ---

    async def execute(self, root: Path, ctx: ExecutionContext) -> None:
        for backup in self.backups(root):
            prechecked = await self._precheck(backup, ctx)
            if prechecked is None:
                continue
            backup_dir, info = prechecked
            try:
                await self.install_course(backup_dir, info, ctx)
            except RegistryConflictError as e:
                self.error(info.shortname, f"Conflicting ids in {backup.name}: {e}")
        await self.change_course_links(ctx)

    async def install_course(self, backup_dir: Path, info: BackupInfo, ctx: ExecutionContext) -> None:
        existing = await repos.get_course_by_shortname(ctx.session, info.shortname)
        if existing is not None:
            self.matchingids.put("courses", info.original_course_id, existing.id)
            self.warning(
                info.shortname,
                f"Course {info.shortname} already exists; the existing course will be used",
            )
            return

        category = await self.get_course_category(ctx)
        course_id = await ctx.host.restore.create_placeholder(category.id)
        try:
            result = await ctx.host.restore.restore(backup_dir, course_id)
        except Exception as e:
            log.error("installer.course.restore_failed", shortname=info.shortname, exc_info=True)
            result = RestoreResult(errors=[f"Restore failed: {e}"])
        for message in result.warnings:
            self.warning(info.shortname, message)
        for message in result.errors:
            self.error(info.shortname, message)
        if not result.ok:
            await self.discard_placeholder(course_id, ctx)
            return

        self.matchingids.put("courses", info.original_course_id, course_id)
        await repos.set_course_visibility(ctx.session, course_id, True)
        await self.match_activities(backup_dir, info, course_id, result, ctx, report=True)
        log.info(
            "installer.course.restored",
            shortname=info.shortname,
            original_id=info.original_course_id,
            course_id=course_id,
        )
        self.success(info.shortname, f"Course {info.shortname} restored into category {category.name}")

    async def match_activities(
        self,
        backup_dir: Path,
        info: BackupInfo,
        course_id: int,
        result: RestoreResult | None,
        ctx: ExecutionContext,
        *,
        report: bool,
    ) -> None:
        """Map original activity instance ids to restored ones.

        Exact ids reported by the restore win. Otherwise originals (backup
        order) are paired with the course's instances (creation order), but
        only when both lists have the same non-zero length.
        """
        for activity_type, namespace in ctx.settings.activity_namespaces.items():
            originals = original_activity_ids(backup_dir, activity_type, info)
            exact = {
                old: new
                for (kind, old), new in ((result.activity_ids or {}) if result else {}).items()
                if kind == activity_type
            }
            if exact:
                for old_id in originals:
                    if old_id in exact:
                        self.matchingids.put(namespace, old_id, exact[old_id])
                continue

            restored = await repos.list_instance_ids(ctx.session, activity_type, course_id)
            if restored is None:
                continue
            if originals and len(originals) == len(restored):
                for old_id, new_id in zip(originals, restored):
                    self.matchingids.put(namespace, old_id, new_id)
            elif (originals or restored) and report:
                self.warning(
                    info.shortname,
                    f"{activity_type} activities of {info.shortname} could not be matched: "
                    f"backup lists {len(originals)}, course has {len(restored)}",
                )

    async def get_course_category(self, ctx: ExecutionContext) -> models.CourseCategory:
        if self._category is not None:
            return self._category
        parent = await repos.get_category(ctx.session, ctx.settings.course_category_root, parent=0)
        if parent is None:
            parent = await repos.create_category(ctx.session, ctx.settings.course_category_root)
        name = f"{Path(ctx.package_name).stem}_{self.timestamp}"
        category = await repos.get_category(ctx.session, name, parent=parent.id)
        if category is None:
            category = await repos.create_category(ctx.session, name, parent)
        self._category = category
        return category

    async def discard_placeholder(self, course_id: int, ctx: ExecutionContext) -> None:
        course = await repos.get_course(ctx.session, course_id)
        if course is None:
            return
        category_id = course.category
        await repos.delete_course(ctx.session, course_id)
        if await repos.delete_category_if_empty(ctx.session, category_id):
            self._category = None

    async def change_course_links(self, ctx: ExecutionContext) -> None:
        """Point URL activities of installed courses at the installed link targets."""
        mapping = self.known(ctx, "courses")
        for course_id in sorted({int(v) for v in self.matchingids.namespace("courses").values()}):
            for url in await repos.list_course_urls(ctx.session, course_id):
                if COURSE_LINK not in (url.externalurl or ""):
                    continue
                linked = parse_qs(urlparse(url.externalurl).query).get("id", [None])[0]
                if linked is None or str(linked) not in mapping:
                    continue
                url.externalurl = f"{ctx.base_url}{COURSE_LINK}{mapping[str(linked)]}"
        await ctx.session.flush()

    # --- resume ---

    async def rebuild_matchingids(self, root: Path, ctx: ExecutionContext) -> None:
        seen: set[str] = set()
        for backup in self.backups(root):
            try:
                backup_dir, info = self._unpack(backup, ctx)
            except BackupError as e:
                log.warning("installer.course.rebuild_skipped", backup=backup.name, error=str(e))
                continue
            if not info.shortname or not info.original_course_id:
                continue
            existing = await repos.get_course_by_shortname(ctx.session, info.shortname)
            if existing is None:
                continue
            self.matchingids.put("courses", info.original_course_id, existing.id)
            if info.shortname not in seen:
                seen.add(info.shortname)
                await self.match_activities(backup_dir, info, existing.id, None, ctx, report=False)
