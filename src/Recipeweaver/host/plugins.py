"""Plugin metadata helpers and the database-backed plugin manager."""

from __future__ import annotations

import re
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from Recipeweaver import repos
from Recipeweaver.config import Settings

_COMPONENT_RE = re.compile(r"\$plugin->component\s*=\s*['\"]([^'\"]+)['\"]\s*;")
_VERSION_RE = re.compile(r"\$plugin->version\s*=\s*([0-9]+)\s*;")

VERSION_FILE = "version.php"


def parse_version_file(content: str) -> tuple[str | None, int | None]:
    """Return ``(component, version)`` declared in a plugin's version.php."""
    component = _COMPONENT_RE.search(content)
    version = _VERSION_RE.search(content)
    return (
        component.group(1) if component else None,
        int(version.group(1)) if version else None,
    )


def split_component(component: str) -> tuple[str, str]:
    """``mod_adaptivequiz`` -> ``("mod", "adaptivequiz")``."""
    plugin_type, _, name = component.partition("_")
    return plugin_type, name


class DatabasePluginManager:
    def __init__(self, session: AsyncSession, settings: Settings):
        self.session = session
        self.settings = settings

    def detect_component(self, plugin_dir: Path) -> str | None:
        version_file = plugin_dir / VERSION_FILE
        if not version_file.is_file():
            return None
        component, _ = parse_version_file(version_file.read_text(encoding="utf-8", errors="replace"))
        return component

    async def installed_version(self, component: str) -> int | None:
        row = await repos.get_config_value(self.session, component, "version")
        if row is None or row.value is None:
            return None
        try:
            return int(row.value)
        except ValueError:
            return None

    def plugin_type_root(self, plugin_type: str) -> Path | None:
        relative = self.settings.plugin_type_roots.get(plugin_type)
        if relative is None:
            return None
        return Path(self.settings.platform_root) / relative
