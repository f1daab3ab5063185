"""Question-bank XML importer.

Reads ``<quiz>`` exports with one ``<question type="...">`` per entry.
``<question type="category">`` entries switch the current category when the
importer is told to take categories from the file.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
from defusedxml import ElementTree as DefusedET
from defusedxml.common import DefusedXmlException
from sqlalchemy.ext.asyncio import AsyncSession

from Recipeweaver import models
from Recipeweaver.errors import QuestionImportError
from Recipeweaver.host.interfaces import ImportOutcome

log = structlog.get_logger()

_GRADED_TYPES = {"multichoice", "truefalse", "shortanswer", "numerical", "matching"}


def _text(node, path: str) -> str:
    found = node.find(path)
    if found is None:
        return ""
    inner = found.find("text")
    return ((inner.text if inner is not None else found.text) or "").strip()


class XmlQuestionImporter:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def import_questions(
        self, file: Path, course_id: int, options: Mapping[str, Any]
    ) -> ImportOutcome:
        try:
            root = DefusedET.parse(file).getroot()
        except (DefusedET.ParseError, DefusedXmlException, OSError) as e:
            raise QuestionImportError(f"{file.name} is not a readable question file: {e}") from e
        if root.tag != "quiz":
            raise QuestionImportError(f"{file.name} has no <quiz> root element")

        stop_on_error = bool(options.get("stop_on_error", True))
        strict_grades = options.get("match_grades") == "error"
        category = "Default"
        outcome = ImportOutcome()
        pending: list[models.Question] = []

        for index, node in enumerate(root.findall("question"), start=1):
            qtype = node.get("type", "")
            if qtype == "category":
                if options.get("cat_from_file", True):
                    category = _text(node, "category") or category
                continue
            name = _text(node, "name")
            if not qtype or not name:
                outcome.errors.append(f"question {index} has no type or name")
                continue
            if strict_grades and qtype in _GRADED_TYPES and not self._grades_valid(node):
                outcome.errors.append(f"question {name} has answer grades that do not match")
                continue
            pending.append(
                models.Question(
                    courseid=course_id,
                    category=category,
                    name=name,
                    qtype=qtype,
                    questiontext=_text(node, "questiontext"),
                    idnumber=(node.findtext("idnumber") or "").strip() or None,
                    defaultmark=float(node.findtext("defaultgrade") or 1.0),
                )
            )

        if outcome.errors and stop_on_error:
            # Nothing is written when the file is rejected
            return outcome

        self.session.add_all(pending)
        await self.session.flush()
        outcome.imported = len(pending)
        outcome.messages.append(f"{len(pending)} questions imported into {category}")
        log.info("questions.file.imported", file=file.name, imported=len(pending))
        return outcome

    @staticmethod
    def _grades_valid(node) -> bool:
        fractions = []
        for answer in node.findall("answer"):
            try:
                fractions.append(float(answer.get("fraction", "0")))
            except ValueError:
                return False
        return all(-100.0 <= f <= 100.0 for f in fractions) and (
            not fractions or max(fractions) > 0
        )
