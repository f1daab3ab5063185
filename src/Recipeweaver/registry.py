"""Old -> new identifier mappings scoped to one orchestration run.

Keys are normalised to strings so an id read from JSON (int) and one read
from XML or a URL (str) land on the same entry. Values keep their type.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from Recipeweaver.errors import RegistryConflictError


def _same(a: Any, b: Any) -> bool:
    return a == b or str(a) == str(b)


class IdentifierRegistry:
    def __init__(self) -> None:
        self._maps: dict[str, dict[str, Any]] = {}

    def put(self, namespace: str, old_id: Any, new_id: Any) -> None:
        """Record ``old_id -> new_id``; a different value for a known key raises."""
        key = str(old_id)
        ns = self._maps.setdefault(namespace, {})
        if key in ns:
            if not _same(ns[key], new_id):
                raise RegistryConflictError(namespace, key, ns[key], new_id)
            return
        ns[key] = new_id

    def remap(self, namespace: str, old_id: Any, new_id: Any) -> None:
        """Explicit re-resolution: replace whatever ``old_id`` mapped to."""
        self._maps.setdefault(namespace, {})[str(old_id)] = new_id

    def get(self, namespace: str, old_id: Any, default: Any = None) -> Any:
        return self._maps.get(namespace, {}).get(str(old_id), default)

    def has(self, namespace: str, old_id: Any) -> bool:
        return str(old_id) in self._maps.get(namespace, {})

    def namespace(self, namespace: str) -> dict[str, Any]:
        return dict(self._maps.get(namespace, {}))

    def namespaces(self) -> list[str]:
        return [name for name, entries in self._maps.items() if entries]

    def merge(self, other: IdentifierRegistry) -> None:
        for namespace, entries in other.items():
            for old_id, new_id in entries.items():
                self.put(namespace, old_id, new_id)

    def items(self) -> Iterator[tuple[str, dict[str, Any]]]:
        for namespace, entries in self._maps.items():
            yield namespace, dict(entries)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {namespace: dict(entries) for namespace, entries in self._maps.items()}

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._maps.values())
