"""Course backup archives (``.mbz``).

A backup is a gzip-compressed tar (older exports use zip) whose root holds
``moodle_backup.xml``. Activity folders live under ``activities/<type>_<moduleid>``
and carry ``<type>.xml`` whose root element names the original instance id.
"""

from __future__ import annotations

import re
import tarfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from xml.etree.ElementTree import Element

import structlog
from defusedxml import ElementTree as DefusedET
from defusedxml.common import DefusedXmlException

from Recipeweaver.errors import BackupError

log = structlog.get_logger()

BACKUP_METADATA = "moodle_backup.xml"
_FOLDER_SUFFIX = re.compile(r"_(\d+)$")


@dataclass(frozen=True)
class BackupActivity:
    modulename: str
    directory: str
    title: str = ""


@dataclass(frozen=True)
class BackupInfo:
    shortname: str
    fullname: str
    original_course_id: str
    activities: list[BackupActivity] = field(default_factory=list)


def _parse(path: Path) -> Element:
    try:
        return DefusedET.parse(path).getroot()
    except (DefusedET.ParseError, DefusedXmlException, OSError) as e:
        raise BackupError(f"cannot parse {path.name}: {e}") from e


def _text(node: Element | None, path: str) -> str:
    if node is None:
        return ""
    found = node.find(path)
    return (found.text or "").strip() if found is not None else ""


def extract_backup(archive: Path, destination: Path) -> Path:
    """Unpack a backup archive; a directory that already holds metadata is used as-is."""
    if archive.is_dir():
        if (archive / BACKUP_METADATA).is_file():
            return archive
        raise BackupError(f"{archive.name} holds no {BACKUP_METADATA}")
    if not archive.is_file():
        raise BackupError(f"{archive.name} does not exist")
    destination.mkdir(parents=True, exist_ok=True)
    try:
        if zipfile.is_zipfile(archive):
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(destination)
        else:
            with tarfile.open(archive, "r:*") as tf:
                tf.extractall(destination, filter="data")
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
        raise BackupError(f"cannot extract {archive.name}: {e}") from e
    if not (destination / BACKUP_METADATA).is_file():
        raise BackupError(f"{archive.name} holds no {BACKUP_METADATA}")
    log.debug("backup.extracted", archive=archive.name, destination=str(destination))
    return destination


def read_backup_info(backup_dir: Path) -> BackupInfo:
    root = _parse(backup_dir / BACKUP_METADATA)
    info = root.find("information")
    activities = []
    if info is not None:
        for node in info.findall("contents/activities/activity"):
            directory = _text(node, "directory")
            modulename = _text(node, "modulename")
            if directory and modulename:
                activities.append(
                    BackupActivity(modulename=modulename, directory=directory, title=_text(node, "title"))
                )
    return BackupInfo(
        shortname=_text(info, "original_course_shortname"),
        fullname=_text(info, "original_course_fullname"),
        original_course_id=_text(info, "original_course_id"),
        activities=activities,
    )


def _folder_key(path: Path) -> tuple[int, str]:
    m = _FOLDER_SUFFIX.search(path.name)
    return (int(m.group(1)) if m else 0, path.name)


def activity_folders(backup_dir: Path, activity_type: str, info: BackupInfo | None = None) -> list[Path]:
    """Activity folders of one type in backup order.

    The ``contents`` listing of the metadata defines the order; without it
    folders are sorted by their numeric module suffix.
    """
    if info is not None and info.activities:
        listed = [
            backup_dir / a.directory
            for a in info.activities
            if a.modulename == activity_type and (backup_dir / a.directory).is_dir()
        ]
        if listed:
            return listed
    return sorted(
        (p for p in (backup_dir / "activities").glob(f"{activity_type}_*") if p.is_dir()),
        key=_folder_key,
    )


def read_activity_id(folder: Path, activity_type: str) -> str | None:
    path = folder / f"{activity_type}.xml"
    if not path.is_file():
        return None
    root = _parse(path)
    activity_id = root.get("id")
    if not activity_id:
        child = root.find(activity_type)
        activity_id = child.get("id") if child is not None else None
    return activity_id or None


def read_activity_field(folder: Path, activity_type: str, name: str) -> str:
    path = folder / f"{activity_type}.xml"
    if not path.is_file():
        return ""
    root = _parse(path)
    return _text(root, f"{activity_type}/{name}") or _text(root, name)


def original_activity_ids(
    backup_dir: Path, activity_type: str, info: BackupInfo | None = None
) -> list[str]:
    ids = []
    for folder in activity_folders(backup_dir, activity_type, info):
        activity_id = read_activity_id(folder, activity_type)
        if activity_id:
            ids.append(activity_id)
    return ids
