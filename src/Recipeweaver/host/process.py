"""Child-process execution for git bootstrapping and platform upgrades."""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path

import structlog

from Recipeweaver.host.interfaces import ProcessResult

log = structlog.get_logger()


class SubprocessRunner:
    def __init__(self, timeout_seconds: float | None = None):
        self.timeout_seconds = timeout_seconds

    def available(self, executable: str) -> bool:
        return shutil.which(executable) is not None or Path(executable).is_file()

    def run(self, argv: Sequence[str], cwd: Path | None = None) -> ProcessResult:
        log.info("process.run", argv=list(argv), cwd=str(cwd) if cwd else None)
        try:
            done = subprocess.run(
                list(argv),
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as e:
            return ProcessResult(returncode=127, stderr=str(e))
        except subprocess.TimeoutExpired as e:
            return ProcessResult(returncode=124, stderr=f"timed out after {e.timeout}s")
        return ProcessResult(returncode=done.returncode, stdout=done.stdout, stderr=done.stderr)
