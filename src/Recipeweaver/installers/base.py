"""Common installer contract.

Each asset type gets one ``AssetInstaller`` subclass built from its recipe
section. ``check`` resolves and reports without touching platform state;
``execute`` performs the same resolution and then mutates, but only for
entities that carry no error. Both write to the installer's own feedback and
matching ids, which the orchestrator merges after every call.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar

import structlog

from Recipeweaver.context import ExecutionContext
from Recipeweaver.feedback import FeedbackSink, FeedbackTree, Severity
from Recipeweaver.recipe import AssetType
from Recipeweaver.registry import IdentifierRegistry

log = structlog.get_logger()


class AssetInstaller:
    asset_type: ClassVar[AssetType]

    def __init__(self, recipe: Any):
        self.recipe = recipe
        self.feedback = FeedbackSink()
        self.matchingids = IdentifierRegistry()

    async def check(self, root: Path, ctx: ExecutionContext) -> None:
        raise NotImplementedError

    async def execute(self, root: Path, ctx: ExecutionContext) -> None:
        raise NotImplementedError

    async def rebuild_matchingids(self, root: Path, ctx: ExecutionContext) -> None:
        """Re-derive mappings produced in an earlier invocation from platform state."""
        return None

    # --- accessors consumed by the orchestrator ---

    def get_feedback(self) -> FeedbackTree:
        return self.feedback.snapshot()

    def get_matchingids(self) -> IdentifierRegistry:
        return self.matchingids

    def get_status(self) -> int:
        return self.feedback.status

    # --- helpers ---

    def report(self, entity: str, severity: Severity, message: str) -> None:
        self.feedback.report(self.asset_type.value, entity, severity, message)
        if severity is not Severity.SUCCESS:
            log.info(
                "installer.feedback",
                asset_type=self.asset_type.value,
                entity=entity,
                severity=severity.value,
                message=message,
            )

    def success(self, entity: str, message: str) -> None:
        self.report(entity, Severity.SUCCESS, message)

    def warning(self, entity: str, message: str) -> None:
        self.report(entity, Severity.WARNING, message)

    def error(self, entity: str, message: str) -> None:
        self.report(entity, Severity.ERROR, message)

    def set_status(self, status: int) -> None:
        self.feedback.set_status(status)

    def has_errors(self, entity: str) -> bool:
        return self.feedback.has_errors(self.asset_type.value, entity)

    def has_issues(self, entity: str) -> bool:
        return self.feedback.has_issues(self.asset_type.value, entity)

    def lookup(self, ctx: ExecutionContext, namespace: str, old_id: Any) -> Any:
        """Own mappings first, then whatever earlier installers produced."""
        value = self.matchingids.get(namespace, old_id)
        if value is None:
            value = ctx.registry.get(namespace, old_id)
        return value

    def known(self, ctx: ExecutionContext, namespace: str) -> dict[str, Any]:
        merged = ctx.registry.namespace(namespace)
        merged.update(self.matchingids.namespace(namespace))
        return merged

    def setting(self, key: str, default: Any = None) -> Any:
        if isinstance(self.recipe, dict):
            return self.recipe.get(key, default)
        return default

    def asset_path(self, root: Path) -> Path:
        relative = str(self.setting("path", "") or "").strip("/")
        return root / relative if relative else root

    def files(self, root: Path, pattern: str = "*") -> list[Path]:
        base = self.asset_path(root)
        if not base.is_dir():
            return []
        return sorted(p for p in base.glob(pattern) if not p.name.startswith("."))
