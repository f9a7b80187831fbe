"""
Batch Queue
===========

Bounded FIFO of batch jobs drained by exactly one analysis worker.

This module provides the BatchQueue class which:
    - Admits a job only while |Pending ∪ Analyzing| < capacity
    - Runs a single long-lived worker task (a worker pool of one)
    - Forwards each job to the analyzer, oldest first
    - Folds completed score deltas into a ScoreBoard
    - Keeps a short trailing history of terminal jobs

Design Rules:
    - Every job mutation happens under one asyncio.Lock
    - At most one job is ANALYZING at any instant
    - A failed job never changes the score and is never retried
    - Capture stop does not cancel analysis; only close() does
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

from carbonlens.analysis.engine import Analyzer
from carbonlens.models.job import BatchJob, JobSnapshot, JobStatus
from carbonlens.pipeline.score import ScoreBoard


logger = logging.getLogger(__name__)


class BatchQueue:
    """
    Bounded job queue with admission control and a single worker.

    Attributes:
        capacity: Maximum number of PENDING + ANALYZING jobs
        history_limit: Terminal jobs retained for observability
        score: Running cumulative score
        rejected_count: Enqueue attempts refused for lack of capacity

    Example:
        queue = BatchQueue(analyzer, capacity=3)

        if not await queue.enqueue(job):
            # Backpressure: caller waits and retries
            ...

        job = await queue.wait_for(job.id)
        print(job.status, queue.score.cumulative_score)
    """

    def __init__(
        self,
        analyzer: Analyzer,
        capacity: int = 3,
        history_limit: int = 5,
    ) -> None:
        """
        Initialize batch queue.

        Args:
            analyzer: External analyzer collaborator
            capacity: Max active jobs. Must be >= 1.
            history_limit: Terminal jobs to keep. Must be >= 0.
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if history_limit < 0:
            raise ValueError("history_limit must be >= 0")

        self.analyzer = analyzer
        self.capacity = capacity
        self.history_limit = history_limit
        self.score = ScoreBoard()

        self._lock = asyncio.Lock()
        self._channel: asyncio.Queue[BatchJob] = asyncio.Queue()
        self._jobs: List[BatchJob] = []
        self._done: Dict[int, asyncio.Event] = {}
        self._next_id: int = 1
        self._worker_task: Optional[asyncio.Task] = None
        self._closed: bool = False

        self.rejected_count: int = 0
        self.completed_count: int = 0
        self.failed_count: int = 0

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def active_count(self) -> int:
        """Number of PENDING + ANALYZING jobs."""
        return sum(1 for job in self._jobs if job.status.is_active)

    @property
    def analyzing_count(self) -> int:
        return sum(1 for job in self._jobs if job.status is JobStatus.ANALYZING)

    @property
    def has_capacity(self) -> bool:
        return self.active_count < self.capacity

    @property
    def worker_running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def get(self, job_id: int) -> Optional[BatchJob]:
        for job in self._jobs:
            if job.id == job_id:
                return job
        return None

    def jobs(self) -> List[JobSnapshot]:
        """Snapshots of active jobs and trailing history, in admission order."""
        return [job.snapshot() for job in self._jobs]

    # =========================================================================
    # Admission
    # =========================================================================

    async def enqueue(self, job: BatchJob) -> bool:
        """
        Admit a job if capacity allows.

        Args:
            job: New job with a closed frame payload

        Returns:
            True if admitted (job.id is assigned), False if the queue is
            at capacity. A rejected job is left untouched so the caller
            can retry it later.
        """
        if job.id != 0 or job.status is not JobStatus.PENDING:
            raise ValueError(f"{job!r} has already been queued")
        if self._closed:
            raise RuntimeError("BatchQueue is closed")

        async with self._lock:
            active = self.active_count
            if active >= self.capacity:
                self.rejected_count += 1
                logger.warning(
                    f"Batch queue full ({active}/{self.capacity}), "
                    f"rejecting batch {job.start_time}-{job.end_time}"
                )
                return False

            job.id = self._next_id
            self._next_id += 1
            self._jobs.append(job)
            self._done[job.id] = asyncio.Event()
            self._channel.put_nowait(job)

        logger.info(
            f"Batch #{job.id} queued ({job.mode}, {job.frame_count} frames, "
            f"{job.start_time}-{job.end_time}), active={self.active_count}/{self.capacity}"
        )
        self.drain()
        return True

    def drain(self) -> bool:
        """
        Make sure the single worker is running.

        Safe to call any number of times; a call while the worker is alive
        does nothing.

        Returns:
            True if a worker was started by this call.
        """
        if self._closed or self.worker_running:
            return False

        self._worker_task = asyncio.create_task(self._worker(), name="batch_worker")
        logger.debug("Batch worker started")
        return True

    async def wait_for(self, job_id: int) -> BatchJob:
        """
        Wait until a job reaches a terminal state.

        Raises:
            KeyError: If no such job is known (never queued or pruned)
        """
        job = self.get(job_id)
        event = self._done.get(job_id)
        if job is None or event is None:
            raise KeyError(f"Unknown batch job: {job_id}")
        await event.wait()
        return job

    async def join(self) -> None:
        """Wait until every admitted job is terminal."""
        await self._channel.join()

    # =========================================================================
    # Worker
    # =========================================================================

    async def _worker(self) -> None:
        logger.info("Batch worker running")
        while True:
            job = await self._channel.get()
            try:
                await self._process(job)
            except asyncio.CancelledError:
                if not job.status.is_terminal:
                    await self._retire(job, error="Cancelled at shutdown")
                raise
            except Exception as e:
                logger.error(f"Batch worker error on #{job.id}: {e}")
                if not job.status.is_terminal:
                    await self._retire(job, error=str(e))
            finally:
                self._channel.task_done()

    async def _process(self, job: BatchJob) -> None:
        async with self._lock:
            job.status = JobStatus.ANALYZING
            job.started_at = time.time()

        logger.info(f"Analyzing batch #{job.id} ({job.mode})")

        try:
            if job.grid_image is not None:
                result = await self.analyzer.analyze_grid(
                    job.grid_image, job.start_time, job.end_time, job.mime_type
                )
            else:
                result = await self.analyzer.analyze_frames(job.frame_images, job.timestamps)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"Batch #{job.id} failed: {message}")
            await self._retire(job, error=message, failure=e)
            return

        await self._retire(job, result=result)

    async def _retire(
        self,
        job: BatchJob,
        result=None,
        error: Optional[str] = None,
        failure: Optional[Exception] = None,
    ) -> None:
        # Taken before pruning, which may drop this job's entry
        event = self._done.get(job.id)

        async with self._lock:
            job.completed_at = time.time()

            if error is None and result is not None:
                job.status = JobStatus.COMPLETE
                job.result = result
                cumulative = self.score.add(result.score_change)
                job.cumulative_score = cumulative
                self.completed_count += 1
                logger.info(
                    f"Batch #{job.id} complete: {result.total_co2_kg} kg CO2, "
                    f"score {result.score_change:+.2f} -> {cumulative:.2f}"
                )
            else:
                job.status = JobStatus.FAILED
                job.error = error or "Analyzer returned no result"
                job.failure = failure
                self.failed_count += 1

            self._prune()

        if event is not None:
            event.set()

    def _prune(self) -> None:
        terminal = [job for job in self._jobs if job.status.is_terminal]
        excess = len(terminal) - self.history_limit
        for job in terminal[:max(0, excess)]:
            self._jobs.remove(job)
            self._done.pop(job.id, None)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def reset_history(self) -> None:
        """Zero the score and forget terminal jobs. Active jobs continue."""
        async with self._lock:
            for job in [job for job in self._jobs if job.status.is_terminal]:
                self._jobs.remove(job)
                self._done.pop(job.id, None)
            self.score.reset()

    async def close(self) -> None:
        """Stop the worker. Any job still analyzing is marked failed."""
        self._closed = True
        if self._worker_task is not None:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None
        logger.info("Batch queue closed")

    def metrics(self) -> dict:
        """
        Get queue metrics for observability.

        Returns:
            Dict with capacity, active, analyzing, counters and score
        """
        return {
            "capacity": self.capacity,
            "active": self.active_count,
            "analyzing": self.analyzing_count,
            "completed": self.completed_count,
            "failed": self.failed_count,
            "rejected": self.rejected_count,
            "cumulative_score": self.score.cumulative_score,
            "worker_running": self.worker_running,
        }
