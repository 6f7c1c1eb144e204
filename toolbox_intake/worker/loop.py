"""
Conversion worker loop.

Flow:
1. Poll: find the oldest conversion job with status='queued'
2. Claim: atomically update it to 'running' (zero rows: someone else has it)
3. Run: dispatch and watch the build workflow, finalize the intake
4. Complete: job ends 'succeeded' or 'failed' with error and outcome

Several workers (and in-process background tasks) may share one database;
the conditional claim keeps each job on exactly one runner.
"""

from __future__ import annotations

import asyncio
import signal
import uuid
from typing import Optional

import structlog

from ..context import AppContext, build_context
from ..db.base import init_database
from ..db.services import JobService
from ..logging_config import configure_logging
from ..pipeline.conversion import ConversionRunner

logger = structlog.get_logger()


class WorkerLoop:
    """Main worker loop for processing queued conversion jobs."""

    def __init__(self, context: AppContext, poll_interval: Optional[int] = None):
        self.context = context
        self.runner = ConversionRunner(context)
        self.poll_interval = poll_interval or context.settings.worker_poll_interval
        self.running = False
        self.worker_id = f"worker-{uuid.uuid4().hex[:8]}"

        logger.info(
            "Worker initialized",
            worker_id=self.worker_id,
            poll_interval=self.poll_interval,
        )

    async def run_once(self) -> int:
        """Claim and run at most one queued job.

        Returns:
            Number of jobs processed
        """
        db = self.context.session()
        try:
            jobs = JobService(db)
            jobs.fail_abandoned(self.context.settings.conversion_stale_after_seconds())
            job = jobs.next_queued()
            job_id = job.id if job else None
        finally:
            db.close()

        if job_id is None:
            return 0

        finished = await self.runner.run_job(job_id, worker_id=self.worker_id)
        if finished is None:
            logger.debug("Job claimed by another runner", job_id=job_id)
            return 0
        logger.info("Job processed", job_id=job_id, status=finished.status)
        return 1

    async def drain(self) -> int:
        """Run queued jobs until the queue is empty; returns how many ran."""
        total = 0
        try:
            while True:
                processed = await self.run_once()
                if processed == 0:
                    return total
                total += processed
        finally:
            await self.context.aclose()

    async def run(self) -> None:
        """Poll until stopped."""
        self.running = True
        logger.info("Worker starting", worker_id=self.worker_id)
        try:
            while self.running:
                try:
                    processed = await self.run_once()
                except Exception as e:
                    logger.exception("Error in worker loop", error=str(e))
                    processed = 0
                if processed == 0 and self.running:
                    await asyncio.sleep(self.poll_interval)
        finally:
            await self.context.aclose()
            logger.info("Worker stopped", worker_id=self.worker_id)

    def stop(self) -> None:
        """Signal the worker to stop after the current job."""
        logger.info("Worker stopping", worker_id=self.worker_id)
        self.running = False

    def _signal_handler(self, signum, frame) -> None:
        logger.info("Received signal, shutting down", signal=signum)
        self.stop()

    def start(self) -> None:
        """Start the worker loop. Runs until stopped."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        asyncio.run(self.run())


def run_worker(poll_interval: Optional[int] = None, once: bool = False) -> None:
    """Build a context from settings and run the worker loop.

    With ``once`` the queue is drained a single time and the call returns.
    """
    context = build_context()
    configure_logging(context.settings.log_level, context.settings.log_format)
    init_database(context.engine)
    worker = WorkerLoop(context, poll_interval=poll_interval)
    if once:
        processed = asyncio.run(worker.drain())
        logger.info("Queue drained", worker_id=worker.worker_id, processed=processed)
        return
    worker.start()
