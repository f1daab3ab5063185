"""Plugin configuration values.

The section maps plugin name -> {key: value}. A value is only written when
the plugin already exposes the key, so recipes cannot create stray settings.
"""

from __future__ import annotations

from pathlib import Path

from Recipeweaver.context import ExecutionContext
from Recipeweaver.installers.base import AssetInstaller
from Recipeweaver.recipe import AssetType


class ConfigInstaller(AssetInstaller):
    asset_type = AssetType.CONFIG

    def _entries(self):
        if not isinstance(self.recipe, dict):
            return
        for plugin, fields in self.recipe.items():
            if not isinstance(fields, dict):
                self.error(str(plugin), f"Configuration for {plugin} must be a key/value object")
                continue
            for key, value in fields.items():
                yield str(plugin), str(key), value

    async def check(self, root: Path, ctx: ExecutionContext) -> None:
        for plugin, key, _value in self._entries():
            current = await ctx.host.config.get_config(plugin, key)
            if current is not None:
                self.success(plugin, f"Setting {key} found")
            else:
                self.warning(plugin, f"Setting {key} was not found")

    async def execute(self, root: Path, ctx: ExecutionContext) -> None:
        for plugin, key, value in self._entries():
            current = await ctx.host.config.get_config(plugin, key)
            if current is None:
                self.error(plugin, f"Setting {key} was not found")
                continue
            await ctx.host.config.set_config(plugin, key, value)
            self.success(plugin, f"Setting {key} updated")
