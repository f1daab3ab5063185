"""Collaborator contracts the installers depend on.

The target platform (restore engine, custom-field subsystem, config store,
plugin manager, question importer, external importers) and the outside world
(package downloads, child processes) are reached only through these
protocols. ``HostServices`` bundles one implementation of each so an
orchestrator run can be wired to the bundled database-backed adapters or to
test fakes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@dataclass
class RestoreResult:
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    # (activity_type, original instance id) -> restored instance id, when the
    # restore engine can report it exactly
    activity_ids: dict[tuple[str, str], int] | None = None

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class ProcessResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


@dataclass
class ImportOutcome:
    imported: int = 0
    messages: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@runtime_checkable
class RestoreService(Protocol):
    async def create_placeholder(self, category_id: int) -> int: ...

    async def restore(self, backup_dir: Path, course_id: int) -> RestoreResult: ...


@runtime_checkable
class FieldHandler(Protocol):
    async def create_category(self, name: str) -> int: ...

    async def save_field(self, category_id: int, definition: Mapping[str, Any]) -> int: ...


@runtime_checkable
class FieldHandlerFactory(Protocol):
    def handler_for(self, component: str, area: str) -> FieldHandler: ...


@runtime_checkable
class ConfigStore(Protocol):
    async def get_config(self, plugin: str, key: str) -> str | None: ...

    async def set_config(self, plugin: str, key: str, value: Any) -> None: ...


@runtime_checkable
class PluginManager(Protocol):
    def detect_component(self, plugin_dir: Path) -> str | None: ...

    async def installed_version(self, component: str) -> int | None: ...

    def plugin_type_root(self, plugin_type: str) -> Path | None: ...


@runtime_checkable
class PackageSource(Protocol):
    async def fetch_version_file(self, url: str) -> str: ...

    async def download(self, url: str, destination: Path) -> Path: ...


@runtime_checkable
class QuestionImporter(Protocol):
    async def import_questions(
        self, file: Path, course_id: int, options: Mapping[str, Any]
    ) -> ImportOutcome: ...


@runtime_checkable
class ImporterRegistry(Protocol):
    def has(self, name: str) -> bool: ...

    async def run(self, name: str, options: Mapping[str, Any], csv_content: str) -> ImportOutcome: ...


@runtime_checkable
class ProcessRunner(Protocol):
    def available(self, executable: str) -> bool: ...

    def run(self, argv: Sequence[str], cwd: Path | None = None) -> ProcessResult: ...


@dataclass
class HostServices:
    restore: RestoreService
    fields: FieldHandlerFactory
    config: ConfigStore
    plugins: PluginManager
    packages: PackageSource
    questions: QuestionImporter
    importers: ImporterRegistry
    processes: ProcessRunner


__all__ = [
    "ConfigStore",
    "FieldHandler",
    "FieldHandlerFactory",
    "HostServices",
    "ImportOutcome",
    "ImporterRegistry",
    "PackageSource",
    "PluginManager",
    "ProcessResult",
    "ProcessRunner",
    "QuestionImporter",
    "RestoreResult",
    "RestoreService",
]
