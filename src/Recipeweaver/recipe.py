"""Recipe manifest model and step plan.

A recipe is the ``recipe.json`` document at the top of a package: an ordered
``steps`` list of asset-type groups plus one configuration section per asset
type. Parsing is strict about JSON and the step list; everything else is
kept as-is for the installers.
"""

from __future__ import annotations

import hashlib
from enum import StrEnum
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, field_validator

from Recipeweaver.errors import RecipeError

MANIFEST_FILENAME = "recipe.json"


class AssetType(StrEnum):
    COURSES = "courses"
    CUSTOMFIELDS = "customfields"
    PLUGINS = "plugins"
    CONFIG = "config"
    LOCALDATA = "localdata"
    LEARNINGPATHS = "learningpaths"
    QUESTIONS = "questions"
    ITEMPARAMS = "itemparams"

    @classmethod
    def parse(cls, tag: str) -> AssetType | None:
        try:
            return cls(tag)
        except ValueError:
            return None


class StepPlan:
    """Ordered groups of asset-type tags, as written in the manifest."""

    def __init__(self, steps: list[list[str]]):
        self._steps = [list(step) for step in steps]

    @property
    def max_step(self) -> int:
        return len(self._steps)

    def asset_types(self, step: int) -> list[str]:
        if step < 0 or step >= self.max_step:
            raise IndexError(f"step {step} outside plan of {self.max_step} steps")
        return list(self._steps[step])

    def completed(self, step: int) -> list[str]:
        """Tags of every step strictly before ``step``."""
        out: list[str] = []
        for group in self._steps[: max(step, 0)]:
            out.extend(tag for tag in group if tag not in out)
        return out

    def all_asset_types(self) -> list[str]:
        return self.completed(self.max_step)

    def __iter__(self):
        return iter(list(step) for step in self._steps)


class Recipe(BaseModel):
    model_config = ConfigDict(extra="allow")

    steps: list[list[str]] = Field(min_length=1)

    _fingerprint: str = PrivateAttr(default="")

    @field_validator("steps")
    @classmethod
    def _no_empty_groups(cls, v: list[list[str]]) -> list[list[str]]:
        for i, group in enumerate(v):
            if not group:
                raise ValueError(f"step {i} lists no asset types")
        return v

    @property
    def fingerprint(self) -> str:
        return self._fingerprint

    @property
    def plan(self) -> StepPlan:
        return StepPlan(self.steps)

    def section(self, tag: str) -> dict[str, Any] | list[Any] | None:
        """Configuration block for an asset type, or None when absent."""
        value = (self.model_extra or {}).get(str(tag))
        if isinstance(value, (dict, list)):
            return value
        return None

    @property
    def subplugins(self) -> dict[str, str]:
        plugins = self.section(AssetType.PLUGINS)
        nested = plugins.get("subplugins") if isinstance(plugins, dict) else None
        if isinstance(nested, dict):
            return {str(k): str(v) for k, v in nested.items()}
        top = (self.model_extra or {}).get("subplugins")
        if isinstance(top, dict):
            return {str(k): str(v) for k, v in top.items()}
        return {}


def compute_fingerprint(manifest_text: str | bytes) -> str:
    raw = manifest_text.encode("utf-8") if isinstance(manifest_text, str) else manifest_text
    return hashlib.sha256(raw).hexdigest()


def load_recipe(manifest_text: str | bytes) -> Recipe:
    """Parse manifest text into a Recipe.

    Raises:
        RecipeError: if the text is not a JSON object or the step list is unusable
    """
    try:
        data = orjson.loads(manifest_text)
    except orjson.JSONDecodeError as e:
        raise RecipeError(f"recipe is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise RecipeError("recipe must be a JSON object")
    try:
        recipe = Recipe.model_validate(data)
    except ValidationError as e:
        raise RecipeError(f"recipe has an invalid step list: {e.errors()[0]['msg']}") from e
    recipe._fingerprint = compute_fingerprint(manifest_text)
    return recipe
