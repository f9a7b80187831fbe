"""
CarbonLens Agent Main Application
=================================

FastAPI entry point for the frame-dedup and batch-analysis service.

Pipeline:
    Capture: sample frames from a video source (CaptureDriver)
    Admission: drop near-duplicates by perceptual hash (AdmissionFilter)
    Batching: compose 12 accepted frames into a labelled grid (GridBatcher)
    Analysis: bounded queue, one worker, external analyzer (BatchQueue)

Endpoints:
    GET    /               - Service information
    GET    /health         - Liveness probe
    GET    /ready          - Readiness probe (queue up + analyzer usable?)
    GET    /metrics        - Counters for observability
    POST   /check-image    - Check-frame against the service admission filter
    DELETE /check-image    - Reset the service admission filter
    POST   /analyze-grid   - Analyze a grid (or ordered frames) synchronously
    GET    /analyze-grid   - Running score and completed batch count
    DELETE /analyze-grid   - Zero the score and clear batch history
    POST   /capture/start  - Start a capture run
    POST   /capture/stop   - Stop the capture run
    GET    /capture/status - Capture driver status
    GET    /jobs           - Queue contents and trailing history
    WS     /ws/jobs        - Score and job snapshots, once per second
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, Optional

from fastapi import APIRouter, Body, FastAPI, File, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from carbonlens.analysis import (
    Analyzer,
    GeminiAnalyzer,
    MissingCredential,
    MockAnalyzer,
)
from carbonlens.capture import CaptureDriver, CapturePolicy, FrameSource, VideoCaptureSource
from carbonlens.config import Settings, settings
from carbonlens.filtering import AdmissionFilter
from carbonlens.imaging import InvalidImage, decode_image_bytes, encode_jpeg, split_data_url
from carbonlens.models import (
    AnalyzeBatchRequest,
    AnalyzeBatchResponse,
    BatchJob,
    CaptureStartRequest,
    CaptureStartResponse,
    CaptureStopResponse,
    CheckFrameResponse,
    JobsResponse,
    JobStatus,
    MessageResponse,
    ScoreResponse,
)
from carbonlens.pipeline import BatchQueue


logger = logging.getLogger(__name__)


# =============================================================================
# Component Factories
# =============================================================================

def create_analyzer(config: Settings) -> Analyzer:
    """
    Create analyzer based on config.

    A Gemini analyzer without an API key still starts; requests then fail
    with MissingCredential (HTTP 503) and /ready reports not ready.
    """
    backend = config.analyzer.backend

    if backend == "mock":
        logger.info("Using MockAnalyzer")
        return MockAnalyzer(reference_daily_co2_kg=config.analyzer.reference_daily_co2_kg)

    elif backend == "gemini":
        logger.info(
            f"Using GeminiAnalyzer: model={config.analyzer.model}, "
            f"min_interval={config.analyzer.min_interval_seconds}s"
        )
        return GeminiAnalyzer(
            api_key=config.analyzer.api_key,
            model=config.analyzer.model,
            temperature=config.analyzer.temperature,
            min_interval_seconds=config.analyzer.min_interval_seconds,
            reference_daily_co2_kg=config.analyzer.reference_daily_co2_kg,
        )

    else:
        raise ValueError(f"Unknown analyzer backend: {backend}")


def create_source_factory(config: Settings) -> Callable[[], FrameSource]:
    """Fresh VideoCaptureSource per capture run, from the configured URI."""
    def factory() -> FrameSource:
        return VideoCaptureSource(
            config.capture.source,
            sample_interval_seconds=config.capture.sample_interval_seconds,
        )
    return factory


def _analyzer_ready(analyzer: Analyzer) -> bool:
    if isinstance(analyzer, GeminiAnalyzer):
        return analyzer.has_credential
    return True


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


# =============================================================================
# HTTP Endpoints
# =============================================================================

router = APIRouter()


@router.get("/")
async def root(request: Request) -> JSONResponse:
    """Service information endpoint."""
    config: Settings = request.app.state.settings
    return JSONResponse({
        "service": "CarbonLens",
        "version": config.service.version,
        "name": config.service.name,
        "status": "running",
        "analyzer_backend": config.analyzer.backend,
        "capture_policy": config.capture.policy,
    })


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - request.app.state.startup_time, 1),
    })


@router.get("/ready")
async def ready(request: Request) -> JSONResponse:
    """
    Readiness probe - can batches be analyzed?

    Returns 503 when the analyzer has no credential.
    """
    state = request.app.state
    analyzer_ready = _analyzer_ready(state.analyzer)
    body = {
        "analyzer_ready": analyzer_ready,
        "queue_capacity_available": state.batch_queue.has_capacity,
        "capture_active": state.driver.is_active,
    }

    if analyzer_ready:
        return JSONResponse({"status": "ready", **body})
    return JSONResponse({"status": "not_ready", **body}, status_code=503)


@router.get("/metrics")
async def metrics(request: Request) -> JSONResponse:
    """Detailed metrics for observability."""
    state = request.app.state
    return JSONResponse({
        "uptime_seconds": round(time.time() - state.startup_time, 1),
        "queue": state.batch_queue.metrics(),
        "admission": state.admission.metrics(),
        "capture": state.driver.status().model_dump(),
        "analyzer": state.analyzer.get_metrics() if hasattr(state.analyzer, "get_metrics") else {},
    })


@router.post("/check-image")
async def check_image(
    request: Request,
    image: Optional[UploadFile] = File(default=None),
) -> JSONResponse:
    """Check-frame: decide whether an uploaded frame differs enough from the last accepted one."""
    if image is None:
        return _error("No image provided", 400)

    data = await image.read()
    state = request.app.state

    try:
        pixels = await asyncio.to_thread(decode_image_bytes, data)
        async with state.admission_lock:
            decision = await asyncio.to_thread(state.admission.should_accept, pixels)
    except InvalidImage as e:
        logger.warning(f"check-image rejected upload {image.filename!r}: {e}")
        return _error(f"Failed to process image: {e}", 422)

    response = CheckFrameResponse.model_validate(decision.to_dict())
    return JSONResponse(response.model_dump(by_alias=True))


@router.delete("/check-image")
async def reset_check_image(request: Request) -> JSONResponse:
    """Reset the service admission filter; the next frame is a first frame."""
    state = request.app.state
    async with state.admission_lock:
        state.admission.reset()
    return JSONResponse(MessageResponse(message="Hash cache cleared").model_dump())


async def _job_from_request(body: AnalyzeBatchRequest, config: Settings) -> BatchJob:
    if body.is_grid:
        mime_type, data = split_data_url(body.grid_image)
        await asyncio.to_thread(decode_image_bytes, data)
        return BatchJob(
            start_time=body.start_time or "",
            end_time=body.end_time or "",
            timestamps=[],
            grid_image=data,
            mime_type=mime_type,
        )

    expected = config.capture.frames_per_batch
    if len(body.images) != expected:
        raise ValueError(f"Expected {expected} frames, got {len(body.images)}")

    encoded: List[bytes] = []
    for data_url in body.images:
        _, data = split_data_url(data_url)
        pixels = await asyncio.to_thread(decode_image_bytes, data)
        encoded.append(
            await asyncio.to_thread(encode_jpeg, pixels, config.capture.jpeg_quality)
        )
    return BatchJob.from_frames(encoded, body.timestamps)


@router.post("/analyze-grid")
async def analyze_grid(request: Request, payload: dict = Body(...)) -> JSONResponse:
    """
    Analyze-batch: queue one batch and wait for its result.

    Status codes:
        400: No image, malformed body or wrong frame count
        422: Image data cannot be decoded
        429: Batch queue at capacity
        502: Analyzer failed or replied with something unusable
        503: Analyzer credential missing
    """
    state = request.app.state

    try:
        body = AnalyzeBatchRequest.model_validate(payload)
    except ValidationError as e:
        message = e.errors()[0].get("msg", str(e)) if e.errors() else str(e)
        return _error(message, 400)

    try:
        job = await _job_from_request(body, state.settings)
    except InvalidImage as e:
        return _error(f"Invalid image data: {e}", 422)
    except ValueError as e:
        return _error(str(e), 400)

    if not await state.batch_queue.enqueue(job):
        return _error("Batch queue full, retry later", 429)

    job = await state.batch_queue.wait_for(job.id)

    if job.status is not JobStatus.COMPLETE:
        if isinstance(job.failure, MissingCredential):
            return _error(f"Analyzer unavailable: {job.error}", 503)
        return _error(f"Analysis failed: {job.error}", 502)

    result = job.result
    response = AnalyzeBatchResponse(
        summary=result.summary,
        activities=result.activities,
        total_co2_kg=result.total_co2_kg,
        score_change=result.score_change,
        cumulative_score=job.cumulative_score,
        batch_number=job.id,
        start_time=result.start_time,
        end_time=result.end_time,
    )
    return JSONResponse(response.model_dump(by_alias=True))


@router.get("/analyze-grid")
async def get_score(request: Request) -> JSONResponse:
    """Running score over completed batches."""
    score = request.app.state.batch_queue.score
    response = ScoreResponse(
        cumulative_score=score.cumulative_score,
        total_batches=score.completed_batches,
    )
    return JSONResponse(response.model_dump(by_alias=True))


@router.delete("/analyze-grid")
async def reset_score(request: Request) -> JSONResponse:
    """Zero the score and forget finished batches. Queued batches still run."""
    await request.app.state.batch_queue.reset_history()
    return JSONResponse(MessageResponse(message="Score and batch history cleared").model_dump())


@router.post("/capture/start")
async def capture_start(
    request: Request,
    body: Optional[CaptureStartRequest] = None,
) -> JSONResponse:
    """Start a capture run. A start while a run is active changes nothing."""
    driver: CaptureDriver = request.app.state.driver

    policy = None
    if body is not None and body.policy:
        try:
            policy = CapturePolicy(body.policy)
        except ValueError:
            return _error(f"Unknown capture policy: {body.policy}", 400)

    started = driver.start(policy)
    response = CaptureStartResponse(started=started, status=driver.status())
    return JSONResponse(response.model_dump())


@router.post("/capture/stop")
async def capture_stop(request: Request) -> JSONResponse:
    """Stop the capture run; a partial batch is discarded."""
    driver: CaptureDriver = request.app.state.driver
    stopped = await driver.stop()
    response = CaptureStopResponse(stopped=stopped, status=driver.status())
    return JSONResponse(response.model_dump())


@router.get("/capture/status")
async def capture_status(request: Request) -> JSONResponse:
    return JSONResponse(request.app.state.driver.status().model_dump())


@router.get("/jobs")
async def jobs(request: Request) -> JSONResponse:
    """Active jobs plus trailing history, oldest first."""
    queue: BatchQueue = request.app.state.batch_queue
    response = JobsResponse(
        capacity=queue.capacity,
        active=queue.active_count,
        cumulative_score=queue.score.cumulative_score,
        jobs=queue.jobs(),
    )
    return JSONResponse(response.model_dump(mode="json", by_alias=True))


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@router.websocket("/ws/jobs")
async def jobs_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time score and job updates."""
    await websocket.accept()
    logger.info("Client connected to /ws/jobs")

    queue: BatchQueue = websocket.app.state.batch_queue
    try:
        while True:
            await websocket.send_json({
                "score": queue.score.to_dict(),
                "jobs": [job.model_dump(mode="json") for job in queue.jobs()],
            })
            await asyncio.sleep(1.0)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        logger.info("Client disconnected from /ws/jobs")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(
    config: Optional[Settings] = None,
    analyzer: Optional[Analyzer] = None,
    source_factory: Optional[Callable[[], FrameSource]] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Settings to use (module settings if None)
        analyzer: Analyzer override; built from config if None
        source_factory: Frame source factory override for capture runs

    Returns:
        FastAPI app whose components are created in the lifespan
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan manager with graceful shutdown."""
        state = app.state
        state.startup_time = time.time()
        logger.info(f"Starting {config.service.name} {config.service.version}")
        logger.info(f"Configured port: {config.server.port}")

        state.analyzer = analyzer or create_analyzer(config)
        state.batch_queue = BatchQueue(
            state.analyzer,
            capacity=config.queue.capacity,
            history_limit=config.queue.history_limit,
        )
        state.admission = AdmissionFilter(threshold=config.admission.threshold)
        state.admission_lock = asyncio.Lock()
        state.driver = CaptureDriver(
            source_factory=source_factory or create_source_factory(config),
            batch_queue=state.batch_queue,
            config=config.capture,
            threshold=config.admission.threshold,
        )

        if config.capture.autostart:
            logger.info(f"Autostarting capture from {config.capture.source}")
            state.driver.start()

        logger.info("All components started")

        yield

        # Shutdown
        logger.info("Shutting down gracefully...")
        await state.driver.stop()
        await state.batch_queue.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="CarbonLens",
        description="Frame dedup and batched activity-emissions analysis",
        version=config.service.version,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.include_router(router)
    return app


# =============================================================================
# FastAPI Application
# =============================================================================

app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "carbonlens.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )
