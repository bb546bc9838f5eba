"""Scheduled screenshot jobs."""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from pydantic import ValidationError

from errors import ConfigurationError
from models import CaptureJob, CaptureOutcome, OffHoursWindow, ScreenshotConfig
from services.file_store import FileStore
from services.imaging import process_frame

logger = logging.getLogger(__name__)

DEFAULT_STAGGER_SECONDS = 2.0

OutcomeRecorder = Callable[[CaptureOutcome], Awaitable[None]]


def minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def is_off_hours(window: Optional[OffHoursWindow], now: datetime) -> bool:
    """
    True when ``now`` falls inside the window.

    ``start <= end`` covers ``[start, end)`` on the same day; otherwise the
    window wraps midnight and covers ``[start, 1440) + [0, end)``.
    """
    if window is None:
        return False
    minute = minute_of_day(now)
    if window.start <= window.end:
        return window.start <= minute < window.end
    return minute >= window.start or minute < window.end


class ScreenshotScheduler:
    """
    Runs each configured job on its own repeating timer.

    Firings never raise: each one ends in a CaptureOutcome, so one job's
    failures never cancel its own timer or touch other jobs.
    """

    def __init__(
        self,
        browser,
        file_store: FileStore,
        *,
        stagger_seconds: float = DEFAULT_STAGGER_SECONDS,
        outcome_recorder: Optional[OutcomeRecorder] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.browser = browser
        self.file_store = file_store
        self.stagger_seconds = stagger_seconds
        self.outcome_recorder = outcome_recorder
        self.clock = clock
        self.off_hours: Optional[OffHoursWindow] = None
        self.is_shutting_down = False
        self._jobs: dict[str, CaptureJob] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._in_flight: set[asyncio.Task] = set()
        self._last_outcomes: dict[str, CaptureOutcome] = {}

    # ── Configuration ───────────────────────────────────────────

    def configure(
        self,
        jobs: Iterable[Union[CaptureJob, dict[str, Any]]],
        off_hours: Optional[Union[OffHoursWindow, dict[str, Any]]] = None,
    ) -> None:
        """Validate and adopt the job list. Nothing is scheduled on failure."""
        if self._timers:
            raise ConfigurationError("Cannot reconfigure a running scheduler")

        raw_jobs = [
            job.model_dump(by_alias=True) if isinstance(job, CaptureJob) else job
            for job in jobs
        ]
        if isinstance(off_hours, OffHoursWindow):
            off_hours = off_hours.model_dump()

        try:
            config = ScreenshotConfig(screenshots=raw_jobs, off_hours=off_hours)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid screenshot configuration: {e}") from e

        self._jobs = {job.name: job for job in config.screenshots}
        self.off_hours = config.off_hours
        logger.info("Configured %d job(s)", len(self._jobs))

    @property
    def jobs(self) -> list[CaptureJob]:
        return list(self._jobs.values())

    def get_job(self, name: str) -> Optional[CaptureJob]:
        return self._jobs.get(name)

    def last_outcome(self, name: str) -> Optional[CaptureOutcome]:
        return self._last_outcomes.get(name)

    # ── Timers ──────────────────────────────────────────────────

    def first_delay(self, index: int) -> float:
        """Offset of a job's first firing, so jobs do not race for the browser at boot."""
        return index * self.stagger_seconds

    def start(self) -> None:
        logger.info("Starting Screenshot Scheduler")
        if self._timers:
            raise ConfigurationError("Scheduler is already running")
        if not self._jobs:
            raise ConfigurationError("No screenshot jobs configured")

        for index, job in enumerate(self._jobs.values()):
            logger.info(
                'Scheduling "%s" every %s seconds (%s)', job.name, job.interval_seconds, job.path
            )
            self._timers[job.name] = asyncio.create_task(
                self._run_timer(job, self.first_delay(index)),
                name=f"timer-{job.name}",
            )
        logger.info("Successfully scheduled %d job(s)", len(self._timers))

    async def _run_timer(self, job: CaptureJob, first_delay: float) -> None:
        await asyncio.sleep(first_delay)
        while not self.is_shutting_down:
            self._fire(job)
            await asyncio.sleep(job.interval_seconds)

    def _fire(self, job: CaptureJob) -> None:
        task = asyncio.create_task(self.run_once(job), name=f"capture-{job.name}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def stop(self) -> None:
        """Cancel timers, let running captures finish, release the browser."""
        logger.info("Stopping Screenshot Scheduler")
        self.is_shutting_down = True

        for name, timer in self._timers.items():
            timer.cancel()
            logger.info("Stopped job: %s", name)
        await asyncio.gather(*self._timers.values(), return_exceptions=True)
        self._timers.clear()

        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

        await self.browser.shutdown()
        logger.info("Scheduler stopped")

    # ── One firing ──────────────────────────────────────────────

    async def run_once(self, job: CaptureJob) -> CaptureOutcome:
        """Capture, process and store one screenshot for ``job``."""
        request_id = f"{job.name}-{int(time.time() * 1000)}"

        if is_off_hours(self.off_hours, self.clock()):
            logger.debug("%s: skipped, inside off-hours window", request_id)
            outcome = CaptureOutcome(job_name=job.name, success=True, skipped=True, reason="off-hours")
            return await self._finish(outcome)

        start = time.monotonic()
        try:
            logger.info("%s: Starting capture: %s", request_id, job.path)
            frame = await self.browser.navigate_and_capture(job)
            logger.debug(
                "%s: %s navigation in %d ms, screenshot in %d ms",
                request_id, frame.navigation.value, frame.navigate_ms, frame.capture_ms,
            )

            output = await asyncio.to_thread(
                process_frame,
                frame.image,
                format=job.format,
                eink_colors=job.eink_colors,
                invert=job.invert,
                rotate=job.rotate,
            )
            saved_path = await asyncio.to_thread(self.file_store.save, job.name, output.data, output.format)
            url = self.file_store.url_for(job.name, output.format)

            duration_ms = int((time.monotonic() - start) * 1000)
            logger.info("%s: Completed in %dms -> %s (accessible at %s)", request_id, duration_ms, saved_path, url)
            outcome = CaptureOutcome(
                job_name=job.name,
                success=True,
                path=str(saved_path),
                url=url,
                duration_ms=duration_ms,
            )
        except Exception as e:
            logger.error("%s: Failed to capture screenshot: %s", request_id, e)
            outcome = CaptureOutcome(
                job_name=job.name,
                success=False,
                error=str(e),
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        return await self._finish(outcome)

    async def _finish(self, outcome: CaptureOutcome) -> CaptureOutcome:
        self._last_outcomes[outcome.job_name] = outcome
        if self.outcome_recorder is not None:
            try:
                await self.outcome_recorder(outcome)
            except Exception as e:
                logger.warning("Failed to record outcome for %s: %s", outcome.job_name, e)
        return outcome
