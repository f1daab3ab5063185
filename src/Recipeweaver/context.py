"""Explicit execution context threaded through every installer call.

Installers never reach for ambient state: the database session, the host
collaborators, the shared identifier registry, the platform base URL and the
scratch directory all travel in one ``ExecutionContext``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from Recipeweaver.config import Settings
from Recipeweaver.host.interfaces import HostServices
from Recipeweaver.registry import IdentifierRegistry


class RunMode(StrEnum):
    CHECK = "check"
    INSTALL = "install"


@dataclass
class ExecutionContext:
    settings: Settings
    session: AsyncSession
    host: HostServices
    mode: RunMode
    package_name: str
    temp_root: Path
    registry: IdentifierRegistry = field(default_factory=IdentifierRegistry)
    actor_id: str = "installer"
    # Optional plugin archive URLs the caller opted into
    optional_plugins: frozenset[str] = frozenset()

    @property
    def base_url(self) -> str:
        return self.settings.base_url.rstrip("/")

    @property
    def mutating(self) -> bool:
        return self.mode is RunMode.INSTALL

    def scratch_dir(self, *parts: str) -> Path:
        path = self.temp_root.joinpath(*parts)
        path.mkdir(parents=True, exist_ok=True)
        return path


__all__ = ["ExecutionContext", "RunMode"]
