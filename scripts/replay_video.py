#!/usr/bin/env python3
"""
Video Replay Script
===================

Standalone script that runs the capture pipeline over a video file or camera.

This script:
    1. Opens the given source with VideoCaptureSource
    2. Runs one capture run (bounded or continuous) through the admission
       filter, grid batcher and batch queue
    3. Logs progress every few seconds
    4. Waits for queued batches, then reports the final score

Prerequisites:
    - pip install -e .
    - For --analyzer gemini: export GEMINI_API_KEY=...

Usage:
    python scripts/replay_video.py recording.mp4
    python scripts/replay_video.py recording.mp4 --policy continuous --interval 0.5
    python scripts/replay_video.py 0 --analyzer gemini --save-grids out/
"""

import argparse
import asyncio
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from carbonlens.analysis import GeminiAnalyzer, MockAnalyzer
from carbonlens.capture import CaptureDriver, CapturePolicy, VideoCaptureSource
from carbonlens.config import CaptureConfig
from carbonlens.models import JobStatus
from carbonlens.pipeline import BatchQueue


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_replay(
    source: str,
    policy: CapturePolicy,
    interval: float,
    threshold: int,
    analyzer_backend: str,
    timeout: float,
    report_interval: float,
    save_grids: Optional[Path],
) -> dict:
    """
    Run one capture over the source and wait for every batch to finish.

    Args:
        source: Video file path, stream URL or camera index
        policy: Capture policy
        interval: Sample interval in seconds (media time for files)
        threshold: Admission Hamming-distance threshold
        analyzer_backend: "mock" or "gemini"
        timeout: Bounded-run timeout in seconds
        report_interval: Seconds between progress reports
        save_grids: Directory to write composed grids to, or None

    Returns:
        Final summary dict
    """
    logger.info("=" * 60)
    logger.info("CarbonLens Replay")
    logger.info("=" * 60)
    logger.info(f"Source: {source}")
    logger.info(f"Policy: {policy.value}")
    logger.info(f"Sample interval: {interval}s")
    logger.info(f"Threshold: {threshold}")
    logger.info(f"Analyzer: {analyzer_backend}")
    logger.info("=" * 60)

    if analyzer_backend == "gemini":
        analyzer = GeminiAnalyzer(api_key=os.environ.get("GEMINI_API_KEY"))
    else:
        analyzer = MockAnalyzer()

    queue = BatchQueue(analyzer)
    config = CaptureConfig(
        source=source,
        policy=policy.value,
        sample_interval_seconds=interval,
        timeout_seconds=timeout,
    )
    driver = CaptureDriver(
        source_factory=lambda: VideoCaptureSource(source, sample_interval_seconds=interval),
        batch_queue=queue,
        config=config,
        threshold=threshold,
    )

    start_time = time.time()
    driver.start(policy)

    try:
        while driver.is_active:
            await asyncio.sleep(report_interval)
            status = driver.status()
            logger.info("-" * 40)
            logger.info(f"Progress Report (elapsed: {time.time() - start_time:.0f}s)")
            logger.info(f"  Frames checked: {status.frames_checked}")
            logger.info(f"  Accepted/skipped: {status.frames_accepted}/{status.frames_skipped}")
            logger.info(f"  Current batch: {status.current_batch_frames}/{config.frames_per_batch}")
            logger.info(f"  Batches queued: {status.batches_queued}")
            logger.info(f"  Cumulative score: {queue.score.cumulative_score}")
    except KeyboardInterrupt:
        logger.info("Replay interrupted by user")
    finally:
        await driver.stop()

    logger.info("Capture finished, waiting for queued batches...")
    await queue.join()

    if save_grids is not None:
        save_grids.mkdir(parents=True, exist_ok=True)
        for snapshot in queue.jobs():
            job = queue.get(snapshot.id)
            if job is not None and job.grid_image is not None:
                path = save_grids / f"batch_{job.id:03d}.jpg"
                path.write_bytes(job.grid_image)
                logger.info(f"Saved grid to {path}")

    await queue.close()

    status = driver.status()
    snapshots = queue.jobs()
    completed = [s for s in snapshots if s.status is JobStatus.COMPLETE]
    failed = [s for s in snapshots if s.status is JobStatus.FAILED]

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {time.time() - start_time:.1f} seconds")
    logger.info(f"Frames checked: {status.frames_checked}")
    logger.info(f"Frames accepted: {status.frames_accepted}")
    logger.info(f"Batches queued: {status.batches_queued}")
    logger.info(f"Batches discarded: {status.batches_discarded}")
    for snapshot in snapshots:
        logger.info(
            f"  #{snapshot.id} {snapshot.status.value} "
            f"{snapshot.start_time}-{snapshot.end_time} "
            f"{snapshot.score_change if snapshot.score_change is not None else snapshot.error}"
        )
    logger.info(f"Cumulative score: {queue.score.cumulative_score}")
    if status.last_error:
        logger.error(f"Source error: {status.last_error}")
    logger.info("=" * 60)

    return {
        "frames_checked": status.frames_checked,
        "frames_accepted": status.frames_accepted,
        "batches_completed": len(completed),
        "batches_failed": len(failed),
        "cumulative_score": queue.score.cumulative_score,
        "source_error": status.last_error,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Replay a video source through the CarbonLens capture pipeline"
    )
    parser.add_argument(
        "source",
        type=str,
        help="Video file, stream URL or camera index",
    )
    parser.add_argument(
        "--policy",
        choices=[p.value for p in CapturePolicy],
        default=CapturePolicy.BOUNDED.value,
        help="Capture policy (default: bounded)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=1.0,
        help="Sample interval in seconds (default: 1.0)",
    )
    parser.add_argument(
        "--threshold",
        type=int,
        default=20,
        help="Admission Hamming-distance threshold (default: 20)",
    )
    parser.add_argument(
        "--analyzer",
        choices=["mock", "gemini"],
        default="mock",
        help="Analyzer backend (default: mock)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=300.0,
        help="Bounded-run timeout in seconds (default: 300)",
    )
    parser.add_argument(
        "--report-interval",
        type=float,
        default=5.0,
        help="Seconds between progress reports (default: 5)",
    )
    parser.add_argument(
        "--save-grids",
        type=Path,
        default=None,
        help="Directory to write composed grid JPEGs to",
    )

    args = parser.parse_args()

    result = asyncio.run(run_replay(
        source=args.source,
        policy=CapturePolicy(args.policy),
        interval=args.interval,
        threshold=args.threshold,
        analyzer_backend=args.analyzer,
        timeout=args.timeout,
        report_interval=args.report_interval,
        save_grids=args.save_grids,
    ))

    sys.exit(0 if result["source_error"] is None and result["batches_failed"] == 0 else 1)


if __name__ == "__main__":
    main()
