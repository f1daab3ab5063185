"""Asset installers keyed by asset type."""

from __future__ import annotations

from Recipeweaver.installers.base import AssetInstaller
from Recipeweaver.installers.config import ConfigInstaller
from Recipeweaver.installers.courses import CoursesInstaller
from Recipeweaver.installers.customfields import CustomFieldsInstaller
from Recipeweaver.installers.itemparams import ItemParamsInstaller
from Recipeweaver.installers.learningpaths import LearningPathsInstaller
from Recipeweaver.installers.localdata import LocalDataInstaller
from Recipeweaver.installers.plugins import PluginsInstaller
from Recipeweaver.installers.questions import QuestionsInstaller
from Recipeweaver.recipe import AssetType

INSTALLERS: dict[AssetType, type[AssetInstaller]] = {
    AssetType.COURSES: CoursesInstaller,
    AssetType.CUSTOMFIELDS: CustomFieldsInstaller,
    AssetType.PLUGINS: PluginsInstaller,
    AssetType.CONFIG: ConfigInstaller,
    AssetType.LOCALDATA: LocalDataInstaller,
    AssetType.LEARNINGPATHS: LearningPathsInstaller,
    AssetType.QUESTIONS: QuestionsInstaller,
    AssetType.ITEMPARAMS: ItemParamsInstaller,
}


def resolve_installer(tag: str) -> type[AssetInstaller] | None:
    asset_type = AssetType.parse(tag)
    if asset_type is None:
        return None
    return INSTALLERS.get(asset_type)


__all__ = ["INSTALLERS", "AssetInstaller", "resolve_installer"]
