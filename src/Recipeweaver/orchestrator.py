"""Check and install orchestration over a recipe package.

``CheckOrchestrator`` runs every asset type's ``check`` over the whole recipe
in one pass and never commits. ``InstallOrchestrator`` executes exactly one
step per invocation: it resumes at the stored step, rebuilds the identifier
registry for already completed asset types, executes the step's installers,
commits after each asset type and advances the progress record.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from Recipeweaver.archive import ArchivePackage, Workspace, unpack_package
from Recipeweaver.config import Settings
from Recipeweaver.context import ExecutionContext, RunMode
from Recipeweaver.db import session_scope
from Recipeweaver.errors import ArchiveError, RecipeError, RegistryConflictError
from Recipeweaver.feedback import FeedbackSink, FeedbackTree, RunStatus, Severity
from Recipeweaver.host import build_host
from Recipeweaver.host.interfaces import HostServices
from Recipeweaver.installers import AssetInstaller, resolve_installer
from Recipeweaver.metrics import inc_counter, observe_histogram, timed
from Recipeweaver.progress import ProgressStore
from Recipeweaver.recipe import AssetType, Recipe

log = structlog.get_logger()

STRUCTURAL_BUCKET = "wbinstaller"
ROLLED_BACK = "Changes rolled back after installer failure"

HostFactory = Callable[[Settings, AsyncSession], HostServices]


@dataclass(frozen=True)
class Finished:
    status: bool = False
    currentstep: int = 0
    maxstep: int = 0


@dataclass(frozen=True)
class RunResult:
    feedback: FeedbackTree
    status: int
    finished: Finished = field(default_factory=Finished)

    def to_dict(self) -> dict[str, Any]:
        return {
            "feedback": self.feedback,
            "status": self.status,
            "finished": {
                "status": self.finished.status,
                "currentstep": self.finished.currentstep,
                "maxstep": self.finished.maxstep,
            },
        }


def structural_failure(error: Exception, entity: str) -> RunResult:
    inc_counter("orchestrator.structural_error")
    log.warning("orchestrator.structural_error", entity=entity, error=str(error))
    sink = FeedbackSink()
    sink.report(STRUCTURAL_BUCKET, entity, Severity.ERROR, str(error))
    return RunResult(feedback=sink.snapshot(), status=sink.status)


def section_for(recipe: Recipe, tag: str) -> dict[str, Any] | list[Any] | None:
    """Recipe section of an asset type; plugins also see top-level ``subplugins``."""
    section = recipe.section(tag)
    if tag == AssetType.PLUGINS and isinstance(section, dict) and "subplugins" not in section:
        subplugins = recipe.subplugins
        if subplugins:
            section = {**section, "subplugins": subplugins}
    return section


class _Orchestrator:
    mode: RunMode
    workspace_name: str

    def __init__(self, settings: Settings, *, host_factory: HostFactory = build_host):
        self.settings = settings
        self.host_factory = host_factory
        self.workspace = Workspace(Path(settings.temp_dir) / self.workspace_name)

    def _context(
        self, session: AsyncSession, host: HostServices, package: ArchivePackage, **kwargs: Any
    ) -> ExecutionContext:
        return ExecutionContext(
            settings=self.settings,
            session=session,
            host=host,
            mode=self.mode,
            package_name=package.filename,
            temp_root=self.workspace.root / "scratch",
            actor_id=self.settings.installer_actor_id,
            **kwargs,
        )

    async def invoke(
        self, tag: str, recipe: Recipe, root: Path, ctx: ExecutionContext, feedback: FeedbackSink
    ) -> None:
        """Run one asset type and fold its feedback and ids into the run."""
        installer_cls = resolve_installer(tag)
        section = section_for(recipe, tag)
        if installer_cls is None or section is None:
            inc_counter("orchestrator.installer.unresolved")
            log.warning("orchestrator.installer.unresolved", asset_type=tag)
            feedback.report(tag, tag, Severity.ERROR, f"Class for {tag} was not found")
            return

        installer = installer_cls(section)
        log.info("orchestrator.installer.started", asset_type=tag, mode=self.mode.value)
        try:
            with timed(f"installer.{tag}.duration_ms"):
                if ctx.mutating:
                    await installer.execute(root, ctx)
                else:
                    await installer.check(root, ctx)
        except Exception as e:
            inc_counter("orchestrator.installer.exception")
            log.error("orchestrator.installer.failed", asset_type=tag, exc_info=True)
            await ctx.session.rollback()
            installer.error(tag, f"Installer for {tag} failed: {e}")
            if ctx.mutating:
                # Ids and successes of a rolled-back installer are void
                feedback.merge(installer.feedback.rolled_back(ROLLED_BACK))
                return

        try:
            ctx.registry.merge(installer.get_matchingids())
        except RegistryConflictError as e:
            feedback.report(tag, e.namespace, Severity.ERROR, str(e))
        feedback.merge(installer.feedback)
        feedback.set_status(installer.get_status())

    async def _close_host(self, host: HostServices) -> None:
        close = getattr(host.packages, "close", None)
        if close is not None:
            await close()


class CheckOrchestrator(_Orchestrator):
    mode = RunMode.CHECK
    workspace_name = "check"

    async def run(self, blob: str | bytes, filename: str) -> RunResult:
        inc_counter("orchestrator.check.invocations")
        try:
            package = unpack_package(blob, filename, self.workspace)
        except (ArchiveError, RecipeError) as e:
            self.workspace.clean()
            return structural_failure(e, filename)

        feedback = FeedbackSink()
        try:
            async with session_scope() as s:
                host = self.host_factory(self.settings, s)
                ctx = self._context(s, host, package)
                try:
                    for tag in package.recipe.plan.all_asset_types():
                        await self.invoke(tag, package.recipe, package.root, ctx, feedback)
                finally:
                    await s.rollback()
                    await self._close_host(host)
        finally:
            self.workspace.clean()

        log.info("orchestrator.check.finished", filename=filename, status=feedback.status)
        return RunResult(
            feedback=feedback.snapshot(),
            status=feedback.status,
            finished=Finished(status=False, currentstep=0, maxstep=package.recipe.plan.max_step),
        )


class InstallOrchestrator(_Orchestrator):
    mode = RunMode.INSTALL
    workspace_name = "install"

    async def run(
        self,
        blob: str | bytes,
        filename: str,
        *,
        optional_plugins: Iterable[str] = (),
        restart: bool = False,
    ) -> RunResult:
        """Execute the next step of the package.

        Raises:
            ProgressNotFoundError: the package was already installed completely
        """
        inc_counter("orchestrator.install.invocations")
        try:
            package = unpack_package(blob, filename, self.workspace)
        except (ArchiveError, RecipeError) as e:
            self.workspace.clean()
            return structural_failure(e, filename)

        recipe = package.recipe
        plan = recipe.plan
        feedback = FeedbackSink()
        try:
            async with session_scope() as s:
                store = ProgressStore(s, user_id=self.settings.installer_actor_id)
                step = await store.begin(filename, package.fingerprint, plan.max_step, restart=restart)
                await s.commit()

                host = self.host_factory(self.settings, s)
                ctx = self._context(s, host, package, optional_plugins=frozenset(optional_plugins))
                started = time.perf_counter()
                try:
                    await self.rebuild_registry(plan.completed(step), recipe, package.root, ctx)
                    log.info(
                        "orchestrator.step.started",
                        filename=filename,
                        step=step,
                        max_step=plan.max_step,
                        asset_types=plan.asset_types(step),
                    )
                    for done, tag in enumerate(plan.asset_types(step), start=1):
                        await self.invoke(tag, recipe, package.root, ctx, feedback)
                        await store.set_subprogress(package.fingerprint, done)
                        await s.commit()
                finally:
                    await self._close_host(host)

                # Always advance, even when the step reported errors
                current, maximum, finished = await store.advance(
                    package.fingerprint, status=feedback.status
                )
        finally:
            self.workspace.clean()

        inc_counter("orchestrator.step.completed")
        observe_histogram("orchestrator.step.duration_ms", int((time.perf_counter() - started) * 1000))
        if finished:
            inc_counter("orchestrator.install.finished")
        log.info(
            "orchestrator.step.finished",
            filename=filename,
            current_step=current,
            max_step=maximum,
            finished=finished,
            status=feedback.status,
        )
        return RunResult(
            feedback=feedback.snapshot(),
            status=feedback.status,
            finished=Finished(status=finished, currentstep=current, maxstep=maximum),
        )

    async def run_all(self, blob: str | bytes, filename: str, **kwargs: Any) -> RunResult:
        """Invoke ``run`` until the package reports finished or a step turns FATAL.

        Feedback of every invoked step is accumulated.
        """
        feedback = FeedbackSink()
        while True:
            result = await self.run(blob, filename, **kwargs)
            feedback.merge(result.feedback)
            feedback.set_status(result.status)
            kwargs.pop("restart", None)
            if (
                result.finished.status
                or result.finished.maxstep == 0
                or result.status >= RunStatus.FATAL
            ):
                return RunResult(feedback.snapshot(), feedback.status, result.finished)

    async def rebuild_registry(
        self, tags: list[str], recipe: Recipe, root: Path, ctx: ExecutionContext
    ) -> None:
        """Re-derive mappings of earlier steps from platform state (no mutation)."""
        for tag in tags:
            installer_cls = resolve_installer(tag)
            section = section_for(recipe, tag)
            if installer_cls is None or section is None:
                continue
            installer: AssetInstaller = installer_cls(section)
            try:
                await installer.rebuild_matchingids(root, ctx)
                ctx.registry.merge(installer.get_matchingids())
            except RegistryConflictError as e:
                log.warning("orchestrator.registry.rebuild_conflict", asset_type=tag, error=str(e))
        log.info("orchestrator.registry.rebuilt", asset_types=tags, entries=len(ctx.registry))
