"""Package decoding and extraction.

Packages arrive as base64 text, optionally wrapped in a
``data:application/<subtype>;base64,`` URI. The decoded bytes must be a zip
archive with at least one top-level directory holding ``recipe.json``.
"""

from __future__ import annotations

import base64
import binascii
import re
import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path

import structlog

from Recipeweaver.errors import ArchiveError
from Recipeweaver.recipe import MANIFEST_FILENAME, Recipe, load_recipe

log = structlog.get_logger()

_DATA_URI_PREFIX = re.compile(r"^data:application/[a-zA-Z0-9\-+.]+;base64,")
_BASE64_BODY = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")


@dataclass(frozen=True)
class ArchivePackage:
    filename: str
    root: Path
    manifest_text: str
    recipe: Recipe

    @property
    def fingerprint(self) -> str:
        return self.recipe.fingerprint


class Workspace:
    """Extraction directory owned by a single orchestrator call."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def clean(self) -> None:
        if self.root.exists():
            shutil.rmtree(self.root)
        log.debug("archive.workspace.cleaned", root=str(self.root))

    def prepare(self) -> Path:
        self.clean()
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root


def decode_payload(blob: str | bytes) -> bytes:
    """Strip an optional data-URI marker and strictly decode base64."""
    text = blob.decode("ascii", errors="replace") if isinstance(blob, bytes) else blob
    text = _DATA_URI_PREFIX.sub("", text.strip(), count=1)
    text = "".join(text.split())
    if not _BASE64_BODY.match(text):
        raise ArchiveError("package is not valid base64")
    try:
        content = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ArchiveError(f"package is not valid base64: {e}") from e
    if not content:
        raise ArchiveError("package decodes to empty content")
    return content


def find_package_root(directory: Path) -> Path:
    """First top-level directory (sorted, skipping ``.``/``_`` names) with a manifest."""
    for entry in sorted(directory.iterdir()):
        if entry.name.startswith((".", "_")) or not entry.is_dir():
            continue
        if (entry / MANIFEST_FILENAME).is_file():
            return entry
    raise ArchiveError(f"no top-level directory with {MANIFEST_FILENAME} found")


def unpack_package(blob: str | bytes, filename: str, workspace: Workspace) -> ArchivePackage:
    """Decode, write and extract a package into the workspace.

    Raises:
        ArchiveError: when the blob is undecodable, not a zip, or holds no manifest
        RecipeError: when the manifest is not a valid recipe
    """
    content = decode_payload(blob)
    root = workspace.prepare()
    archive_path = root / Path(filename).name
    if archive_path.suffix.lower() != ".zip":
        archive_path = archive_path.with_name(archive_path.name + ".zip")
    archive_path.write_bytes(content)

    extract_dir = root / "extracted"
    try:
        with zipfile.ZipFile(archive_path) as zf:
            zf.extractall(extract_dir)
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"package {filename} cannot be opened as an archive") from e

    package_root = find_package_root(extract_dir)
    manifest_text = (package_root / MANIFEST_FILENAME).read_text(encoding="utf-8")
    recipe = load_recipe(manifest_text)
    log.info(
        "archive.package.unpacked",
        filename=filename,
        root=str(package_root),
        fingerprint=recipe.fingerprint,
        steps=recipe.plan.max_step,
    )
    return ArchivePackage(
        filename=filename, root=package_root, manifest_text=manifest_text, recipe=recipe
    )
