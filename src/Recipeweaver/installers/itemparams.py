"""Item parameter CSV files handed to an external importer strategy.

``matcher`` names the strategy and its CSV options (``delimiter_name``,
``encoding``, ``dateparseformat``). Item parameters attach to questions, so
the import refuses to run while the platform has none.
"""

from __future__ import annotations

from pathlib import Path

from Recipeweaver import repos
from Recipeweaver.context import ExecutionContext
from Recipeweaver.installers.base import AssetInstaller
from Recipeweaver.recipe import AssetType


class ItemParamsInstaller(AssetInstaller):
    asset_type = AssetType.ITEMPARAMS

    @property
    def matcher(self) -> dict:
        matcher = self.setting("matcher")
        return matcher if isinstance(matcher, dict) else {}

    @property
    def importer_name(self) -> str:
        return str(self.matcher.get("name") or "")

    def importer_available(self, ctx: ExecutionContext) -> bool:
        return bool(self.importer_name) and ctx.host.importers.has(self.importer_name)

    async def check(self, root: Path, ctx: ExecutionContext) -> None:
        for file in self.files(root, "*.csv"):
            self.success(file.name, f"Item parameter file {file.name} found")
            if self.importer_available(ctx):
                self.success(file.name, f"Importer {self.importer_name} is available")
            else:
                self.warning(file.name, f"Importer {self.importer_name or '(none)'} is not available")

    async def execute(self, root: Path, ctx: ExecutionContext) -> None:
        for file in self.files(root, "*.csv"):
            if not self.importer_available(ctx):
                self.error(file.name, f"Importer {self.importer_name or '(none)'} is not available")
                continue
            if await repos.count_questions(ctx.session) == 0:
                self.error(file.name, "No questions found on the platform")
                continue
            options = {
                "delimiter_name": self.matcher.get("delimiter_name") or "semicolon",
                "encoding": self.matcher.get("encoding"),
                "dateparseformat": self.matcher.get("dateparseformat"),
            }
            try:
                content = file.read_bytes().decode(options["encoding"] or "utf-8-sig")
            except (UnicodeDecodeError, LookupError):
                self.error(file.name, f"{file.name} cannot be decoded")
                continue
            outcome = await ctx.host.importers.run(self.importer_name, options, content)
            for message in outcome.errors:
                self.error(file.name, message)
            if not outcome.errors:
                self.success(file.name, f"Item parameters imported with {self.importer_name}")
