"""Typed key paths over decoded JSON trees.

Recipes address nested values with ``a->b->c`` expressions. A ``JsonPath``
is the parsed token sequence; lookups return ``MISSING`` when any step is
absent so a present ``null`` stays distinguishable from a missing key.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class _Missing:
    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def _step(node: Any, token: str) -> Any:
    if isinstance(node, dict):
        return node.get(token, MISSING)
    if isinstance(node, list):
        try:
            index = int(token)
        except ValueError:
            return MISSING
        if -len(node) <= index < len(node):
            return node[index]
        return MISSING
    return MISSING


@dataclass(frozen=True)
class JsonPath:
    tokens: tuple[str, ...]

    @classmethod
    def parse(cls, expression: str) -> JsonPath:
        separator = "->" if "->" in expression else "."
        tokens = tuple(part.strip() for part in expression.split(separator) if part.strip())
        if not tokens:
            raise ValueError(f"empty path expression: {expression!r}")
        return cls(tokens)

    def get(self, tree: Any) -> Any:
        node = tree
        for token in self.tokens:
            node = _step(node, token)
            if node is MISSING:
                return MISSING
        return node

    def set(self, tree: Any, value: Any) -> bool:
        """Assign at the path; returns False when the parent container is absent."""
        parent = JsonPath(self.tokens[:-1]).get(tree) if len(self.tokens) > 1 else tree
        last = self.tokens[-1]
        if isinstance(parent, dict):
            parent[last] = value
            return True
        if isinstance(parent, list):
            try:
                index = int(last)
            except ValueError:
                return False
            if -len(parent) <= index < len(parent):
                parent[index] = value
                return True
        return False

    def __str__(self) -> str:
        return "->".join(self.tokens)
