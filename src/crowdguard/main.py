"""
CrowdGuard Main Application
===========================

FastAPI entry point for the crowd-safety monitoring core.

The HTTP surface is a thin adapter over MonitoringPipeline. It reads state
and forwards the operator commands the core accepts: alert acknowledgement,
video selection, site selection and the monitor toggle.

Endpoints:
    GET  /                               - Service information
    GET  /health                         - Liveness probe
    GET  /ready                          - Readiness probe (pipeline running?)
    GET  /metrics                        - Recent metric samples
    GET  /alerts                         - Active alerts
    POST /alerts/{alert_id}/acknowledge  - Acknowledge one alert
    GET  /analysis                       - Current risk analysis
    POST /monitoring                     - Enable or disable the monitor
    POST /site                           - Select the monitored site
    POST /video                          - Upload, select and analyze a video
    GET  /video                          - Estimator state and latest result
    GET  /activity                       - Recent activity events
    GET  /status                         - Operational counters
    WS   /ws/events                      - Real-time pipeline events
"""

import asyncio
import logging
import random
import shutil
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Union

from fastapi import FastAPI, File, HTTPException, Query, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from crowdguard.config import Settings, settings
from crowdguard.alerts import AlertBoard, AlertEvaluator, AlertPolicy
from crowdguard.analysis import GeminiClient, GeminiRiskScorer, RiskAnalysisOrchestrator, RiskScorer
from crowdguard.models.activity import ActivityKind
from crowdguard.models.video import VideoAsset
from crowdguard.observability import ActivityLog
from crowdguard.pipeline import MonitoringPipeline, PipelineEvent
from crowdguard.source import MetricFeedConsumer, MetricRanges, MetricWindow, SyntheticMetricSource
from crowdguard.video import (
    GeminiFrameInference,
    InvalidAssetError,
    MockFrameInference,
    VideoCrowdEstimator,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_pipeline: Optional[MonitoringPipeline] = None
_startup_time: float = 0.0


def get_pipeline() -> MonitoringPipeline:
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return _pipeline


# =============================================================================
# Component Factories
# =============================================================================

def create_gemini_client(config: Settings) -> Optional[GeminiClient]:
    """Create a Gemini client, or None when no API key is configured."""
    if not config.gemini.api_key:
        return None
    return GeminiClient(
        api_key=config.gemini.api_key,
        model=config.gemini.model,
        base_url=config.gemini.base_url,
        timeout=config.gemini.request_timeout_sec,
    )


def create_risk_scorer(config: Settings, client: Optional[GeminiClient]) -> Optional[RiskScorer]:
    """
    Create the risk scorer based on config.

    Returns None (offline analysis) for the offline backend, or when the
    gemini backend is requested without an API key.
    """
    backend = config.analysis.backend

    if backend == "offline":
        logger.info("Using offline risk analysis")
        return None

    elif backend == "gemini":
        if client is None:
            logger.warning("GEMINI_API_KEY not set, risk analysis runs offline")
            return None
        logger.info(f"Using GeminiRiskScorer: model={config.gemini.model}")
        return GeminiRiskScorer(client, venue=config.analysis.venue)

    else:
        raise ValueError(f"Unknown analysis backend: {backend}")


def create_frame_inference(
    config: Settings,
    client: Optional[GeminiClient],
) -> Union[MockFrameInference, GeminiFrameInference]:
    """
    Create the per-frame inference backend based on config.

    The gemini backend falls back to mock inference when no API key is set.
    """
    backend = config.video.inference_backend

    if backend == "mock":
        logger.info("Using MockFrameInference")
        return MockFrameInference(
            base_count=config.video.mock.base_count,
            variation_amplitude=config.video.mock.variation_amplitude,
        )

    elif backend == "gemini":
        if client is None:
            logger.warning("GEMINI_API_KEY not set, using MockFrameInference")
            return MockFrameInference(
                base_count=config.video.mock.base_count,
                variation_amplitude=config.video.mock.variation_amplitude,
            )
        logger.info(f"Using GeminiFrameInference: model={config.gemini.model}")
        return GeminiFrameInference(client)

    else:
        raise ValueError(f"Unknown video inference backend: {backend}")


def build_pipeline(config: Settings) -> MonitoringPipeline:
    """Wire every component of the monitoring core from configuration."""
    window = MetricWindow(capacity=config.monitor.window_capacity)
    board = AlertBoard(capacity=config.alerts.capacity)
    evaluator = AlertEvaluator(
        board,
        policy=AlertPolicy(
            density_threshold=config.alerts.density_threshold,
            trigger_cutoff=config.alerts.trigger_cutoff,
            location=config.alerts.location,
            message=config.alerts.message,
        ),
    )

    client = create_gemini_client(config)
    orchestrator = RiskAnalysisOrchestrator(
        window,
        board,
        scorer=create_risk_scorer(config, client),
        offline_mode=config.analysis.offline_mode,
        timeout_sec=config.analysis.timeout_sec,
        metrics_context=config.analysis.metrics_context,
        alerts_context=config.analysis.alerts_context,
    )
    estimator = VideoCrowdEstimator(
        create_frame_inference(config, client),
        sample_frames=config.video.sample_frames,
        jpeg_quality=config.video.jpeg_quality,
        frame_timeout_sec=config.video.frame_timeout_sec,
        location=config.video.location,
    )

    source: Optional[SyntheticMetricSource] = None
    feed_consumer: Optional[MetricFeedConsumer] = None
    backend = config.source.backend

    pipeline = MonitoringPipeline(
        window,
        board,
        evaluator,
        orchestrator,
        estimator,
        ActivityLog(max_entries=config.activity.max_entries),
        metric_interval_sec=config.monitor.metric_interval_sec,
        analysis_interval_sec=config.analysis.interval_sec,
        monitoring_enabled=config.monitor.enabled,
        site_id=config.monitor.site_id,
    )

    if backend == "synthetic":
        syn = config.synthetic
        source = SyntheticMetricSource(
            location=config.monitor.site_id,
            ranges=MetricRanges(
                density_min=syn.density_min,
                density_max=syn.density_max,
                flow_min=syn.flow_min,
                flow_max=syn.flow_max,
                velocity_min=syn.velocity_min,
                velocity_max=syn.velocity_max,
                anomaly_min=syn.anomaly_min,
                anomaly_max=syn.anomaly_max,
            ),
            rng=random.Random(syn.seed),
        )
    elif backend == "feed":
        logger.info(f"Metric feed URL: {config.source.feed_url}")
        feed_consumer = MetricFeedConsumer(
            url=config.source.feed_url,
            sink=pipeline.ingest,
            reconnect_backoff_ms=config.source.reconnect_backoff_ms,
            max_reconnect_attempts=config.source.max_reconnect_attempts,
        )
    else:
        raise ValueError(f"Unknown metric source backend: {backend}")

    pipeline.source = source
    pipeline.feed_consumer = feed_consumer
    return pipeline


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _pipeline, _startup_time

    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")
    logger.info(f"Configured port: {settings.server.port}")

    Path(settings.video.upload_dir).mkdir(parents=True, exist_ok=True)

    _pipeline = build_pipeline(settings)
    await _pipeline.start()

    yield

    logger.info("Shutting down gracefully...")
    await _pipeline.stop()
    _pipeline = None
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="CrowdGuard",
    description="Crowd-safety monitoring core",
    version=settings.service.version,
    lifespan=lifespan,
)


class MonitoringToggle(BaseModel):
    enabled: bool


class SiteSelection(BaseModel):
    site_id: str = Field(..., min_length=1)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "CrowdGuard",
        "version": settings.service.version,
        "name": settings.service.name,
        "site_id": _pipeline.site_id if _pipeline is not None else settings.monitor.site_id,
        "status": "running",
        "source_backend": settings.source.backend,
        "analysis_backend": settings.analysis.backend,
        "video_inference_backend": settings.video.inference_backend,
        "offline_mode": settings.analysis.offline_mode,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - is the pipeline running?

    Returns 503 if not ready.
    """
    running = _pipeline is not None and _pipeline.running
    body = {
        "status": "ready" if running else "not_ready",
        "pipeline_running": running,
    }
    if _pipeline is not None and _pipeline.feed_consumer is not None:
        body["feed_connected"] = _pipeline.feed_consumer.connected

    return JSONResponse(body, status_code=200 if running else 503)


@app.get("/metrics")
async def metrics(limit: Optional[int] = Query(default=None, ge=0)) -> JSONResponse:
    """Most recent metric samples, oldest first."""
    pipeline = get_pipeline()
    samples = pipeline.window.snapshot(limit)
    return JSONResponse({
        "count": len(samples),
        "capacity": pipeline.window.capacity,
        "metrics": [m.model_dump(mode="json") for m in samples],
    })


@app.get("/alerts")
async def alerts() -> JSONResponse:
    """Active alerts, most recent first."""
    pipeline = get_pipeline()
    return JSONResponse({
        "alerts": [a.model_dump(mode="json") for a in pipeline.board.snapshot()],
    })


@app.post("/alerts/{alert_id}/acknowledge")
async def acknowledge_alert(alert_id: str) -> JSONResponse:
    """Acknowledge one alert. Unknown ids are a no-op."""
    pipeline = get_pipeline()
    removed = pipeline.acknowledge(alert_id)
    return JSONResponse({
        "id": alert_id,
        "acknowledged": removed is not None,
        "active_alerts": len(pipeline.board),
    })


@app.get("/analysis")
async def analysis() -> JSONResponse:
    """Current risk analysis."""
    pipeline = get_pipeline()
    return JSONResponse(pipeline.current_analysis.model_dump(mode="json"))


@app.post("/monitoring")
async def monitoring(toggle: MonitoringToggle) -> JSONResponse:
    """Enable or disable future metric and analysis ticks."""
    pipeline = get_pipeline()
    pipeline.set_monitoring(toggle.enabled)
    return JSONResponse({"enabled": pipeline.monitoring_enabled})


@app.post("/site")
async def select_site(selection: SiteSelection) -> JSONResponse:
    """Switch the monitored site."""
    pipeline = get_pipeline()
    pipeline.select_site(selection.site_id)
    return JSONResponse({"site_id": pipeline.site_id})


def _discard_upload(asset: VideoAsset, upload_dir: Path) -> None:
    """Delete a replaced upload. Files outside the upload directory are left alone."""
    path = Path(asset.path)
    if path.parent.resolve() != upload_dir.resolve():
        return
    try:
        path.unlink(missing_ok=True)
        logger.debug(f"Removed replaced upload {path.name}")
    except OSError as e:
        logger.warning(f"Could not remove replaced upload {path.name}: {e}")


@app.post("/video")
async def upload_video(file: UploadFile = File(...)) -> JSONResponse:
    """
    Upload a video, select it and run crowd estimation.

    Returns 415 for non-video uploads and 409 when a newer upload
    superseded this one before its analysis finished. Only the file of the
    currently selected upload is kept on disk.
    """
    pipeline = get_pipeline()

    filename = Path(file.filename or "upload").name
    content_type = file.content_type or "application/octet-stream"
    upload_dir = Path(settings.video.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    path = upload_dir / f"{uuid.uuid4().hex}_{filename}"

    asset = VideoAsset(path=str(path), filename=filename, content_type=content_type)
    if not asset.is_video:
        raise HTTPException(
            status_code=415,
            detail=f"{filename} is not a video (content type {content_type!r})",
        )

    with path.open("wb") as out:
        await asyncio.to_thread(shutil.copyfileobj, file.file, out)

    previous = pipeline.estimator.asset
    try:
        pipeline.select_video(asset)
    except InvalidAssetError as e:
        path.unlink(missing_ok=True)
        raise HTTPException(status_code=415, detail=str(e))
    if previous is not None:
        _discard_upload(previous, upload_dir)

    result = await pipeline.analyze_video()
    if result is None:
        if pipeline.estimator.asset is not asset:
            return JSONResponse(
                {"error": "Superseded by a newer video", "file_name": filename},
                status_code=409,
            )
        return JSONResponse(
            {"error": "Video analysis failed", **pipeline.estimator.get_status()},
            status_code=500,
        )

    return JSONResponse({"file_name": filename, "result": result.model_dump(mode="json")})


@app.get("/video")
async def video_status() -> JSONResponse:
    """Estimator state and latest result."""
    pipeline = get_pipeline()
    return JSONResponse(pipeline.estimator.get_status())


@app.get("/activity")
async def activity(
    limit: Optional[int] = Query(default=50, ge=1),
    kind: Optional[ActivityKind] = None,
) -> JSONResponse:
    """Recent activity events, oldest first."""
    pipeline = get_pipeline()
    events = pipeline.activity.recent(limit=limit, kind=kind)
    return JSONResponse({
        "events": [e.model_dump(mode="json") for e in events],
        "counts": pipeline.activity.counts(),
    })


@app.get("/status")
async def status() -> JSONResponse:
    """Operational counters for observability."""
    pipeline = get_pipeline()
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        **pipeline.get_metrics(),
    })


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/events")
async def event_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time pipeline events."""
    pipeline = get_pipeline()
    await websocket.accept()
    logger.info("Client connected to /ws/events")

    queue: asyncio.Queue = asyncio.Queue(maxsize=256)

    def enqueue(event: PipelineEvent) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(event)

    async def forward_events() -> None:
        while True:
            event = await queue.get()
            await websocket.send_json(event.to_dict())

    unsubscribe = pipeline.subscribe(enqueue)
    sender: Optional[asyncio.Task] = None
    try:
        await websocket.send_json({"type": "snapshot", "payload": pipeline.snapshot()})
        sender = asyncio.create_task(forward_events(), name="ws_events")

        # Client messages are ignored; receiving only detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        unsubscribe()
        if sender is not None:
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"WebSocket send failed: {e}")
        logger.info("Client disconnected from /ws/events")


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "crowdguard.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )
