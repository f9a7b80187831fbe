"""
Capture Driver
==============

Outer sampling loop: sample -> admit -> accumulate -> compose -> enqueue.

Policies:
    - BOUNDED: stop at N accepted frames or after the timeout, whichever
      comes first; queue one batch only if exactly N frames were collected
    - CONTINUOUS: run until stopped; queue every full batch, then start a
      fresh batch with the admission reference cleared

Design Rules:
    - One run at a time per driver; start() while active is a no-op
    - Each run owns a fresh CaptureSession (and admission filter)
    - Stop is observed at iteration boundaries; an in-flight frame check
      finishes first; a partial batch is discarded, never padded
    - When the batch queue is full, sampling pauses and capacity is
      re-polled on a fixed interval
    - A bad frame or a failed batch never ends the run; only stop, source
      exhaustion or SourceUnavailable do
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from carbonlens.batching.grid import GridBatcher
from carbonlens.capture.source import FrameSource, SourceUnavailable
from carbonlens.config import CaptureConfig
from carbonlens.filtering.admission import DEFAULT_THRESHOLD, AdmissionFilter
from carbonlens.imaging.codec import InvalidImage, encode_jpeg
from carbonlens.models.api import CaptureStatus
from carbonlens.models.frame import Frame
from carbonlens.models.job import BatchJob
from carbonlens.pipeline.queue import BatchQueue


logger = logging.getLogger(__name__)


class CapturePolicy(str, Enum):
    """Capture run policy."""

    BOUNDED = "bounded"
    CONTINUOUS = "continuous"


class _Outcome(Enum):
    ACCEPTED = "accepted"
    SKIPPED = "skipped"
    NO_FRAME = "no_frame"
    ERROR = "error"
    EXHAUSTED = "exhausted"


@dataclass
class CaptureSession:
    """
    State of one capture run.

    Created at run start and discarded when the next run starts.

    Attributes:
        run_id: Sequential run number for this driver
        policy: Policy the run was started with
        admission: Filter holding the last accepted fingerprint
        current_frames: Accepted frames of the batch being assembled
    """

    run_id: int
    policy: CapturePolicy
    admission: AdmissionFilter
    started_at: float = field(default_factory=time.time)
    current_frames: List[Frame] = field(default_factory=list)
    check_errors: int = 0
    batches_queued: int = 0
    batches_discarded: int = 0
    waiting_for_capacity: bool = False
    error: Optional[str] = None

    def start_next_batch(self) -> None:
        """Begin an empty batch judged against its own first frame."""
        self.current_frames = []
        self.admission.reset()


class CaptureDriver:
    """
    Orchestrates capture runs against a frame source and a batch queue.

    Attributes:
        batch_queue: Queue receiving full batches
        batcher: Grid composer (cols x rows == frames per batch)
        config: Capture configuration
        threshold: Admission threshold for each run's filter

    Example:
        driver = CaptureDriver(
            source_factory=lambda: VideoCaptureSource("0"),
            batch_queue=queue,
            config=settings.capture,
        )

        driver.start(CapturePolicy.CONTINUOUS)
        ...
        await driver.stop()
    """

    def __init__(
        self,
        source_factory: Callable[[], FrameSource],
        batch_queue: BatchQueue,
        config: Optional[CaptureConfig] = None,
        threshold: int = DEFAULT_THRESHOLD,
    ) -> None:
        """
        Initialize capture driver.

        Args:
            source_factory: Creates a fresh, unopened source per run
            batch_queue: Destination for full batches
            config: Capture configuration (defaults if None)
            threshold: Admission Hamming-distance threshold

        Raises:
            ValueError: If frames_per_batch does not fill the grid exactly
        """
        self.config = config or CaptureConfig()
        if self.config.frames_per_batch != self.config.grid_cols * self.config.grid_rows:
            raise ValueError(
                f"frames_per_batch ({self.config.frames_per_batch}) must equal "
                f"grid_cols * grid_rows ({self.config.grid_cols}x{self.config.grid_rows})"
            )

        self.source_factory = source_factory
        self.batch_queue = batch_queue
        self.threshold = threshold
        self.batcher = GridBatcher(cols=self.config.grid_cols, rows=self.config.grid_rows)

        self._task: Optional[asyncio.Task] = None
        self._session: Optional[CaptureSession] = None
        self._stop_event = asyncio.Event()
        self._run_count: int = 0

    @property
    def batch_size(self) -> int:
        return self.config.frames_per_batch

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def session(self) -> Optional[CaptureSession]:
        """Current or most recent session."""
        return self._session

    # =========================================================================
    # Control
    # =========================================================================

    def start(self, policy: Optional[CapturePolicy] = None) -> bool:
        """
        Start a capture run.

        Args:
            policy: Run policy; defaults to the configured policy

        Returns:
            True if a run was started, False if one is already active
        """
        if self.is_active:
            logger.warning("Capture already active, ignoring start request")
            return False

        policy = CapturePolicy(policy or self.config.policy)

        self._run_count += 1
        self._stop_event.clear()
        self._session = CaptureSession(
            run_id=self._run_count,
            policy=policy,
            admission=AdmissionFilter(threshold=self.threshold),
        )
        self._task = asyncio.create_task(
            self._run(self._session),
            name=f"capture_run_{self._run_count}",
        )
        logger.info(f"Capture run #{self._run_count} started ({policy.value})")
        return True

    async def stop(self) -> bool:
        """
        Request the active run to stop and wait for it to wind down.

        Returns:
            True if a run was active
        """
        if not self.is_active:
            return False

        logger.info("Capture stop requested")
        self._stop_event.set()
        try:
            await self._task
        except SourceUnavailable:
            pass  # already recorded on the session
        return True

    async def wait(self) -> Optional[CaptureSession]:
        """
        Wait for the current run to finish.

        Raises:
            SourceUnavailable: If the run ended because the source failed
        """
        if self._task is not None:
            await self._task
        return self._session

    def status(self) -> CaptureStatus:
        session = self._session
        if session is None:
            return CaptureStatus(active=False)

        return CaptureStatus(
            active=self.is_active,
            policy=session.policy.value,
            run_id=session.run_id,
            frames_checked=session.admission.checked,
            frames_accepted=session.admission.accepted,
            frames_skipped=session.admission.skipped,
            current_batch_frames=len(session.current_frames),
            batches_queued=session.batches_queued,
            batches_discarded=session.batches_discarded,
            waiting_for_capacity=session.waiting_for_capacity,
            started_at=session.started_at,
            last_error=session.error,
        )

    # =========================================================================
    # Run loop
    # =========================================================================

    async def _run(self, session: CaptureSession) -> None:
        source = self.source_factory()
        try:
            await asyncio.to_thread(source.open)

            if session.policy is CapturePolicy.BOUNDED:
                await self._run_bounded(session, source)
            else:
                await self._run_continuous(session, source)

        except SourceUnavailable as e:
            session.error = str(e)
            logger.error(f"Capture run #{session.run_id} aborted: {e}")
            raise
        finally:
            await asyncio.to_thread(source.close)
            logger.info(
                f"Capture run #{session.run_id} ended: "
                f"{session.admission.accepted} accepted, "
                f"{session.admission.skipped} skipped, "
                f"{session.batches_queued} batches queued"
            )

    async def _run_bounded(self, session: CaptureSession, source: FrameSource) -> None:
        deadline = time.monotonic() + self.config.timeout_seconds

        while not self._stop_event.is_set() and len(session.current_frames) < self.batch_size:
            if time.monotonic() >= deadline:
                logger.info(
                    f"Timeout ({self.config.timeout_seconds:.0f}s). "
                    f"Got {len(session.current_frames)}/{self.batch_size} frames."
                )
                break

            if await self._sample_once(session, source) is _Outcome.EXHAUSTED:
                break

        if len(session.current_frames) == self.batch_size:
            await self._submit_batch(session)
        else:
            self._discard_partial(session)

    async def _run_continuous(self, session: CaptureSession, source: FrameSource) -> None:
        while not self._stop_event.is_set():
            if not self.batch_queue.has_capacity:
                if not session.waiting_for_capacity:
                    logger.info(
                        f"Batch queue at capacity, pausing capture "
                        f"(re-check every {self.config.queue_poll_interval_seconds:.0f}s)"
                    )
                session.waiting_for_capacity = True
                if await self._pause(self.config.queue_poll_interval_seconds):
                    break
                continue
            session.waiting_for_capacity = False

            if await self._sample_once(session, source) is _Outcome.EXHAUSTED:
                break

            if len(session.current_frames) == self.batch_size:
                if not await self._submit_batch(session):
                    break
                session.start_next_batch()

        self._discard_partial(session)

    async def _sample_once(self, session: CaptureSession, source: FrameSource) -> _Outcome:
        frame = await asyncio.to_thread(source.read)

        if frame is None:
            if source.exhausted:
                return _Outcome.EXHAUSTED
            await self._pause(self.config.frame_retry_delay_seconds)
            return _Outcome.NO_FRAME

        try:
            decision = await asyncio.to_thread(session.admission.should_accept, frame.image)
        except InvalidImage as e:
            session.check_errors += 1
            logger.warning(f"Frame check failed: {e}")
            outcome = _Outcome.ERROR
        else:
            if decision.accept:
                session.current_frames.append(frame)
                logger.info(
                    f"Frame {len(session.current_frames)}/{self.batch_size} "
                    f"accepted ({decision.reason})"
                )
                outcome = _Outcome.ACCEPTED
            else:
                logger.debug(f"Frame skipped ({decision.reason})")
                outcome = _Outcome.SKIPPED

        await self._pause(self.config.sample_interval_seconds)
        return outcome

    async def _submit_batch(self, session: CaptureSession) -> bool:
        """
        Compose the full batch and enqueue it, waiting out backpressure.

        Returns:
            True if queued (or dropped as unusable), False if a stop
            arrived while waiting for capacity
        """
        frames = list(session.current_frames)
        try:
            grid = await asyncio.to_thread(self.batcher.compose, frames)
            jpeg = await asyncio.to_thread(encode_jpeg, grid, self.config.jpeg_quality)
        except (InvalidImage, ValueError) as e:
            session.batches_discarded += 1
            logger.error(f"Could not compose batch, discarding it: {e}")
            return True

        job = BatchJob.from_grid(jpeg, frames)

        while True:
            if await self.batch_queue.enqueue(job):
                session.batches_queued += 1
                session.waiting_for_capacity = False
                return True

            session.waiting_for_capacity = True
            logger.info(
                f"Batch queue full, holding batch and re-polling in "
                f"{self.config.queue_poll_interval_seconds:.0f}s"
            )
            if await self._pause(self.config.queue_poll_interval_seconds):
                session.batches_discarded += 1
                session.current_frames = []
                session.waiting_for_capacity = False
                logger.warning("Stop requested while waiting for queue capacity, batch discarded")
                return False

    def _discard_partial(self, session: CaptureSession) -> None:
        if session.current_frames:
            session.batches_discarded += 1
            logger.info(
                f"Discarding partial batch "
                f"({len(session.current_frames)}/{self.batch_size} frames)"
            )
            session.current_frames = []

    async def _pause(self, seconds: float) -> bool:
        """
        Sleep, waking early on stop.

        Returns:
            True if a stop was requested
        """
        if seconds <= 0:
            await asyncio.sleep(0)
            return self._stop_event.is_set()

        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False
