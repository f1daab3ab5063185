"""Named CSV import strategies for item parameters.

Strategies are async callables ``(session, options, csv_content) ->
ImportOutcome``. The registry holds the bundled ``item_params`` strategy plus
any ``module:attr`` paths configured under ``itemparams_importers``.
"""

from __future__ import annotations

import csv
import importlib
import io
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from Recipeweaver import models
from Recipeweaver.host.interfaces import ImportOutcome

log = structlog.get_logger()

ImportStrategy = Callable[[AsyncSession, Mapping[str, Any], str], Awaitable[ImportOutcome]]

DELIMITERS = {"semicolon": ";", "comma": ",", "tab": "\t", "colon": ":", "cfg": ","}


def delimiter_for(name: str | None) -> str:
    return DELIMITERS.get((name or "semicolon").lower(), ";")


def _float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    return float(value.replace(",", "."))


async def import_item_params_csv(
    session: AsyncSession, options: Mapping[str, Any], csv_content: str
) -> ImportOutcome:
    """Bundled strategy: one row per question, keyed by ``componentid`` or ``label``.

    ``label`` is matched against the question idnumber. ``dateparseformat``
    is a ``strptime`` pattern for the optional ``timecreated`` column.
    """
    outcome = ImportOutcome()
    reader = csv.DictReader(io.StringIO(csv_content), delimiter=delimiter_for(options.get("delimiter_name")))
    fmt = options.get("dateparseformat")
    for line, row in enumerate(reader, start=2):
        component_id = (row.get("componentid") or "").strip()
        if not component_id and row.get("label"):
            q = await session.execute(
                select(models.Question.id).where(models.Question.idnumber == row["label"].strip())
            )
            found = q.scalars().first()
            component_id = str(found) if found is not None else ""
        if not component_id or not (row.get("model") or "").strip():
            outcome.errors.append(f"line {line}: no matching question or model")
            continue
        timecreated = None
        if fmt and (row.get("timecreated") or "").strip():
            try:
                timecreated = datetime.strptime(row["timecreated"].strip(), fmt).replace(
                    tzinfo=timezone.utc
                )
            except ValueError:
                outcome.errors.append(f"line {line}: timecreated does not match {fmt}")
                continue
        try:
            session.add(
                models.ItemParam(
                    componentid=int(component_id),
                    componentname=(row.get("componentname") or "question").strip(),
                    model=row["model"].strip(),
                    difficulty=_float(row.get("difficulty")),
                    discrimination=_float(row.get("discrimination")),
                    guessing=_float(row.get("guessing")),
                    timecreated=timecreated,
                )
            )
        except ValueError:
            outcome.errors.append(f"line {line}: numeric columns cannot be parsed")
            continue
        outcome.imported += 1
    await session.flush()
    outcome.messages.append(f"{outcome.imported} item parameter rows imported")
    return outcome


def load_strategy(path: str) -> ImportStrategy:
    """Resolve ``package.module:attr`` to a strategy callable."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"importer path must look like 'module:attr', got {path!r}")
    module = importlib.import_module(module_name)
    strategy = getattr(module, attr)
    if not callable(strategy):
        raise TypeError(f"{path} is not callable")
    return strategy


class StrategyImporterRegistry:
    def __init__(self, session: AsyncSession, configured: Mapping[str, str] | None = None):
        self.session = session
        self._strategies: dict[str, ImportStrategy] = {"item_params": import_item_params_csv}
        for name, path in (configured or {}).items():
            try:
                self._strategies[name] = load_strategy(path)
            except (ImportError, AttributeError, ValueError, TypeError) as e:
                # Unresolvable strategies surface as "importer unavailable" feedback
                log.warning("importers.strategy.unavailable", name=name, path=path, error=str(e))

    def register(self, name: str, strategy: ImportStrategy) -> None:
        self._strategies[name] = strategy

    def has(self, name: str) -> bool:
        return name in self._strategies

    async def run(self, name: str, options: Mapping[str, Any], csv_content: str) -> ImportOutcome:
        strategy = self._strategies[name]
        return await strategy(self.session, options, csv_content)
