"""Resumable step pointer keyed by manifest fingerprint.

The progress row lives while an install is in flight and is deleted once the
last step completes. Run history (``install_runs``) outlives it; it answers
progress queries and distinguishes "never started" from "already finished".
Concurrent invocations for one fingerprint are not serialised here.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from Recipeweaver import models, repos
from Recipeweaver.errors import ProgressNotFoundError

log = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressStore:
    def __init__(self, session: AsyncSession, *, user_id: str = "installer"):
        self.session = session
        self.user_id = user_id

    async def peek_step(self, fingerprint: str) -> int | None:
        record = await repos.get_progress(self.session, fingerprint)
        return record.current_step if record is not None else None

    async def begin(
        self, filename: str, fingerprint: str, max_step: int, *, restart: bool = False
    ) -> int:
        """Return the step to execute, creating the record at step 0 when absent.

        Raises:
            ProgressNotFoundError: the install for this fingerprint already
                finished and ``restart`` was not requested
        """
        if restart:
            await self.restart(fingerprint)
        record = await repos.get_progress(self.session, fingerprint)
        if record is not None:
            log.info(
                "progress.record.resumed",
                fingerprint=fingerprint,
                current_step=record.current_step,
                max_step=record.max_step,
            )
            return record.current_step

        last = await repos.latest_run(self.session, fingerprint=fingerprint)
        if last is not None and last.state == models.RunState.finished:
            raise ProgressNotFoundError(
                f"install of {filename} already finished; request a restart to run it again"
            )
        await repos.create_progress(
            self.session,
            fingerprint=fingerprint,
            filename=filename,
            user_id=self.user_id,
            max_step=max_step,
        )
        await repos.create_run(
            self.session, filename=filename, fingerprint=fingerprint, user_id=self.user_id
        )
        log.info("progress.record.created", fingerprint=fingerprint, max_step=max_step)
        return 0

    async def set_subprogress(self, fingerprint: str, done: int) -> None:
        run = await repos.latest_run(self.session, fingerprint=fingerprint)
        if run is None:
            return
        run.subprogress = done
        run.modified_at = _utcnow()
        await self.session.flush()

    async def advance(self, fingerprint: str, *, status: int = 0) -> tuple[int, int, bool]:
        """Move past the current step; returns ``(current_step, max_step, finished)``."""
        record = await repos.get_progress(self.session, fingerprint)
        if record is None:
            raise ProgressNotFoundError(f"no progress recorded for {fingerprint}")
        record.current_step += 1
        record.modified_at = _utcnow()
        current, maximum = record.current_step, record.max_step
        finished = current >= maximum

        run = await repos.latest_run(self.session, fingerprint=fingerprint)
        if run is not None:
            run.progress = current
            run.subprogress = 0
            run.status = max(run.status or 0, int(status))
            run.modified_at = _utcnow()
            if finished:
                run.state = models.RunState.finished

        if finished:
            await repos.delete_progress(self.session, fingerprint)
            log.info("progress.record.finished", fingerprint=fingerprint, max_step=maximum)
        else:
            log.info("progress.record.advanced", fingerprint=fingerprint, current_step=current)
        await self.session.flush()
        return current, maximum, finished

    async def restart(self, fingerprint: str) -> None:
        await repos.delete_progress(self.session, fingerprint)
        run = await repos.latest_run(self.session, fingerprint=fingerprint)
        if run is not None and run.state != models.RunState.reset:
            run.state = models.RunState.reset
            run.modified_at = _utcnow()
        await self.session.flush()
        log.info("progress.record.reset", fingerprint=fingerprint)

    async def latest_run(self, filename: str) -> dict[str, int]:
        """``{progress, subprogress}`` of the most recent run for a package file."""
        run = await repos.latest_run(self.session, filename=filename)
        if run is None:
            raise ProgressNotFoundError(f"no install recorded for {filename}")
        return {"progress": run.progress, "subprogress": run.subprogress}
