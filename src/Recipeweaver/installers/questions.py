"""Question-bank exports, imported into the configured course."""

from __future__ import annotations

from pathlib import Path

import structlog

from Recipeweaver.context import ExecutionContext
from Recipeweaver.errors import QuestionImportError
from Recipeweaver.installers.base import AssetInstaller
from Recipeweaver.recipe import AssetType

log = structlog.get_logger()

IMPORT_OPTIONS = {
    "stop_on_error": True,
    "match_grades": "error",
    "cat_from_file": True,
    "context_from_file": True,
    "cat_to_file": True,
    "context_to_file": True,
}


class QuestionsInstaller(AssetInstaller):
    asset_type = AssetType.QUESTIONS

    def question_files(self, root: Path) -> list[Path]:
        return [p for p in self.files(root) if p.is_file()]

    async def check(self, root: Path, ctx: ExecutionContext) -> None:
        for file in self.question_files(root):
            self.success(file.name, f"Question file {file.name} found")

    async def execute(self, root: Path, ctx: ExecutionContext) -> None:
        course_id = ctx.settings.question_course_id
        for file in self.question_files(root):
            try:
                outcome = await ctx.host.questions.import_questions(file, course_id, dict(IMPORT_OPTIONS))
            except QuestionImportError as e:
                self.error(file.name, str(e))
                continue
            for message in outcome.errors:
                self.error(file.name, message)
            if outcome.errors:
                continue
            log.info("installer.questions.imported", file=file.name, imported=outcome.imported)
            self.success(file.name, f"{outcome.imported} questions of {file.name} imported")
