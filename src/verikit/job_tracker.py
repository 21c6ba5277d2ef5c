"""Track submitted verification jobs until the service reports completion.

Each job is ``pending`` until a poll response carries isJobCompleted=true,
then ``completed`` for good. Polling is pull-based on a fixed interval
while any job is pending. A failed poll is logged and the job is simply
polled again next tick: no backoff and no retry cap.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from verikit.client import VerificationClient
from verikit.models import VerificationJobStatus
from verikit.scheduler import AsyncioScheduler, CancelHandle, Scheduler
from verikit.store import JobStore, VerificationJob, utc_now

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 15.0


class JobTracker:
    def __init__(
        self,
        client: VerificationClient,
        jobs: JobStore,
        scheduler: Optional[Scheduler] = None,
        interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.client = client
        self.jobs = jobs
        self.scheduler = scheduler or AsyncioScheduler()
        self.interval = interval
        self._handle: Optional[CancelHandle] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._listeners: List[Callable[[VerificationJob], None]] = []

    @property
    def is_polling(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    def on_completed(self, listener: Callable[[VerificationJob], None]) -> None:
        self._listeners.append(listener)

    def record_submission(self, verification_id: str) -> VerificationJob:
        """Create the pending job for a fresh submission and make sure polling runs."""
        now = utc_now()
        job = VerificationJob(id=verification_id, submitted_at=now, started_at=now)
        self.jobs.save(job)
        logger.info("Tracking verification job %s", verification_id)
        return job

    def start(self) -> None:
        """Begin polling; also re-arm whenever the store reports new pending jobs."""
        if self._unsubscribe is None:
            self._unsubscribe = self.jobs.subscribe(self._on_store_changed)
        self._ensure_polling()

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def clear(self) -> None:
        """Bulk delete; pending jobs included."""
        self.jobs.clear()

    def _on_store_changed(self) -> None:
        if self._unsubscribe is not None:
            self._ensure_polling()

    def _ensure_polling(self) -> None:
        if self.is_polling or not self.jobs.pending():
            return
        self._handle = self.scheduler.schedule(self.interval, self._tick)

    async def _tick(self) -> None:
        await self.poll_once()
        if not self.jobs.pending() and self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def poll_once(self) -> List[VerificationJob]:
        """Poll every pending job once; returns the jobs that completed this tick."""
        pending = self.jobs.pending()
        if not pending:
            return []
        results = await asyncio.gather(*(self._poll_job(job) for job in pending))
        return [job for job in results if job is not None]

    async def _poll_job(self, job: VerificationJob) -> Optional[VerificationJob]:
        try:
            status = await self.client.get_job_status(job.id)
        except ValueError as e:
            # VerikitError subclasses ValueError, as does pydantic's ValidationError
            logger.warning("Error polling job %s: %s", job.id, e)
            return None
        if not status.is_job_completed:
            return None
        return self.apply_status(job.id, status)

    def apply_status(self, job_id: str, status: VerificationJobStatus) -> Optional[VerificationJob]:
        """Apply a completed poll response. Returns the job only if it just transitioned."""
        if not status.is_job_completed:
            return None
        # re-read: another poll or writer may have completed it already
        current = self.jobs.get(job_id)
        if current is None or current.is_completed:
            return None

        updated = current.model_copy(update={
            "started_at": status.job_start_time or current.started_at,
            "finished_at": status.job_finish_time or utc_now(),
            "contract": status.contract,
            "error": status.error,
        })
        self.jobs.save(updated)
        logger.info("Job %s completed: %s", job_id, updated.outcome)
        for listener in list(self._listeners):
            listener(updated)
        return updated
