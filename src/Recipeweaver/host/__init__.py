"""Host platform adapters."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from Recipeweaver.config import Settings
from Recipeweaver.host.github import GithubPackageSource
from Recipeweaver.host.importers import StrategyImporterRegistry
from Recipeweaver.host.interfaces import HostServices
from Recipeweaver.host.platform import DatabaseConfigStore, DatabaseFieldHandlerFactory
from Recipeweaver.host.plugins import DatabasePluginManager
from Recipeweaver.host.process import SubprocessRunner
from Recipeweaver.host.questions import XmlQuestionImporter
from Recipeweaver.host.restore import DatabaseRestoreService


def build_host(settings: Settings, session: AsyncSession) -> HostServices:
    """Wire the bundled database-backed adapters to one session."""
    return HostServices(
        restore=DatabaseRestoreService(session),
        fields=DatabaseFieldHandlerFactory(session),
        config=DatabaseConfigStore(session),
        plugins=DatabasePluginManager(session, settings),
        packages=GithubPackageSource(settings),
        questions=XmlQuestionImporter(session),
        importers=StrategyImporterRegistry(session, settings.itemparams_importers),
        processes=SubprocessRunner(),
    )


__all__ = ["HostServices", "build_host"]
