"""User-visible outcome channel for installer runs.

Feedback is a nested map ``feedback[asset_type][entity][severity] -> [message]``.
Entries are append-only during a run. The run status is an integer level that
only ever rises; recording a warning or an error raises it to the matching
level, and ``set_status`` can escalate further (for example to FATAL when a
platform upgrade fails).
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from enum import IntEnum, StrEnum
from typing import Any

from Recipeweaver.metrics import inc_counter


class Severity(StrEnum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class RunStatus(IntEnum):
    OK = 0
    WARNING = 1
    ERROR = 2
    FATAL = 3


_SEVERITY_STATUS = {
    Severity.SUCCESS: RunStatus.OK,
    Severity.WARNING: RunStatus.WARNING,
    Severity.ERROR: RunStatus.ERROR,
}

FeedbackTree = dict[str, dict[str, dict[str, list[str]]]]


class FeedbackSink:
    def __init__(self) -> None:
        self._tree: FeedbackTree = {}
        self._status = RunStatus.OK

    @property
    def status(self) -> int:
        return int(self._status)

    def set_status(self, status: int) -> None:
        """Raise the run status; lower values are ignored."""
        if status > self._status:
            self._status = RunStatus(status)

    def report(self, asset_type: str, entity: str, severity: Severity | str, message: str) -> None:
        sev = Severity(severity)
        bucket = self._tree.setdefault(str(asset_type), {}).setdefault(str(entity), {})
        bucket.setdefault(sev.value, []).append(message)
        inc_counter(f"feedback.{sev.value}")
        self.set_status(_SEVERITY_STATUS[sev])

    def messages(self, asset_type: str, entity: str, severity: Severity | str) -> list[str]:
        node = self._tree.get(str(asset_type), {}).get(str(entity), {})
        return list(node.get(Severity(severity).value, []))

    def has_errors(self, asset_type: str, entity: str) -> bool:
        return bool(self.messages(asset_type, entity, Severity.ERROR))

    def has_issues(self, asset_type: str, entity: str) -> bool:
        """True when the entity carries a warning or an error."""
        return self.has_errors(asset_type, entity) or bool(
            self.messages(asset_type, entity, Severity.WARNING)
        )

    def merge(self, other: FeedbackSink | Mapping[str, Any]) -> None:
        """Append every message of ``other``; status follows the merged severities."""
        tree = other.snapshot() if isinstance(other, FeedbackSink) else other
        for asset_type, entities in tree.items():
            for entity, severities in entities.items():
                for severity, messages in severities.items():
                    for message in messages:
                        self.report(asset_type, entity, severity, message)
        if isinstance(other, FeedbackSink):
            self.set_status(other.status)

    def rolled_back(self, message: str) -> FeedbackSink:
        """Copy without success entries; entities that had one get ``message`` as an error."""
        out = FeedbackSink()
        for asset_type, entities in self._tree.items():
            for entity, severities in entities.items():
                for severity, messages in severities.items():
                    if severity == Severity.SUCCESS.value:
                        continue
                    for m in messages:
                        out.report(asset_type, entity, severity, m)
                if severities.get(Severity.SUCCESS.value):
                    out.report(asset_type, entity, Severity.ERROR, message)
        out.set_status(self.status)
        return out

    def snapshot(self) -> FeedbackTree:
        return copy.deepcopy(self._tree)

    def __bool__(self) -> bool:
        return bool(self._tree)
