"""
Monitoring Pipeline
===================

Process-wide state container for one monitored site.

Owns:
    - MetricWindow (recent samples)
    - AlertBoard (active alerts)
    - RiskAnalysisOrchestrator (current risk analysis)
    - VideoCrowdEstimator (current video result)

Runs three independent units of work on the event loop:
    - metric loop: one synthetic sample per tick while monitoring is enabled
      (or a MetricFeedConsumer pushing samples from a camera-analytics feed)
    - analysis loop: first cycle as soon as data exists, then every interval
      while monitoring is enabled
    - video analysis: ad hoc, triggered by the operator

Presentation layers subscribe to PipelineEvents. The only external commands
are acknowledge(alert_id) and select_video(asset) (plus the monitor toggle
and site selection).

Design Rules:
    - Activity logging and subscriber callbacks are fire-and-forget; their
      failures are logged and never reach the core
    - Any exception in a loop tick is logged and the loop keeps running
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from crowdguard.alerts.evaluator import AlertEvaluator
from crowdguard.alerts.lifecycle import AlertBoard
from crowdguard.analysis.orchestrator import OUTCOME_FAILED, RiskAnalysisOrchestrator
from crowdguard.models.alert import Alert
from crowdguard.models.analysis import CrowdAnalysisResult, RiskAnalysis
from crowdguard.models.metric import CrowdMetric
from crowdguard.models.video import VideoAsset, VideoState
from crowdguard.observability.activity import ActivityLog
from crowdguard.source.consumer import MetricFeedConsumer
from crowdguard.source.generator import SyntheticMetricSource
from crowdguard.source.window import MetricWindow, OutOfOrderSampleError
from crowdguard.video.estimator import VideoCrowdEstimator


logger = logging.getLogger(__name__)


EVENT_METRIC = "metric"
EVENT_ALERT = "alert"
EVENT_ALERT_ACKNOWLEDGED = "alert_acknowledged"
EVENT_ANALYSIS = "analysis"
EVENT_VIDEO_STATE = "video_state"
EVENT_VIDEO_RESULT = "video_result"
EVENT_MONITORING = "monitoring"
EVENT_SITE = "site"


@dataclass(frozen=True)
class PipelineEvent:
    """Notification published to subscribers."""

    type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {"type": self.type, "payload": self.payload, "timestamp": self.timestamp}


Listener = Callable[[PipelineEvent], None]


class MonitoringPipeline:
    """
    Event-emitting state container with explicit lifecycle.

    Attributes:
        window: Recent metric samples
        board: Active alerts
        evaluator: Alert trigger policy
        orchestrator: Risk analysis cycle
        estimator: Video crowd estimator
        activity: Activity log
        running: Whether start() has been called and stop() has not

    Example:
        pipeline = MonitoringPipeline(...)
        unsubscribe = pipeline.subscribe(print)
        await pipeline.start()
        ...
        await pipeline.stop()
    """

    def __init__(
        self,
        window: MetricWindow,
        board: AlertBoard,
        evaluator: AlertEvaluator,
        orchestrator: RiskAnalysisOrchestrator,
        estimator: VideoCrowdEstimator,
        activity: ActivityLog,
        source: Optional[SyntheticMetricSource] = None,
        feed_consumer: Optional[MetricFeedConsumer] = None,
        metric_interval_sec: float = 3.0,
        analysis_interval_sec: float = 30.0,
        monitoring_enabled: bool = True,
        site_id: str = "MAIN_GATE",
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            window: Metric window
            board: Alert board (shared with evaluator and orchestrator)
            evaluator: Alert evaluator
            orchestrator: Risk analysis orchestrator
            estimator: Video crowd estimator
            activity: Activity log
            source: Synthetic source driven by the metric loop
            feed_consumer: Feed consumer (its sink should be ingest)
            metric_interval_sec: Metric tick interval
            analysis_interval_sec: Analysis cycle interval
            monitoring_enabled: Initial monitor state
            site_id: Currently monitored site
        """
        self.window = window
        self.board = board
        self.evaluator = evaluator
        self.orchestrator = orchestrator
        self.estimator = estimator
        self.activity = activity
        self.source = source
        self.feed_consumer = feed_consumer
        self.metric_interval_sec = metric_interval_sec
        self.analysis_interval_sec = analysis_interval_sec
        self.site_id = site_id

        self._monitoring_enabled = monitoring_enabled
        self._listeners: List[Listener] = []
        self._tasks: List[asyncio.Task] = []
        self._first_data: Optional[asyncio.Event] = None
        self._running: bool = False

        self.tick_error_count: int = 0
        self.analysis_error_count: int = 0

        self.estimator.on_state_change = self._on_video_state

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def monitoring_enabled(self) -> bool:
        return self._monitoring_enabled

    @property
    def current_analysis(self) -> RiskAnalysis:
        return self.orchestrator.current

    @property
    def current_video_result(self) -> Optional[CrowdAnalysisResult]:
        return self.estimator.result

    def snapshot(self) -> dict:
        """Full state for a presentation layer, as JSON-ready data."""
        return {
            "site_id": self.site_id,
            "monitoring_enabled": self._monitoring_enabled,
            "metrics": [m.model_dump(mode="json") for m in self.window.snapshot()],
            "alerts": [a.model_dump(mode="json") for a in self.board.snapshot()],
            "analysis": self.current_analysis.model_dump(mode="json"),
            "video": self.estimator.get_status(),
        }

    # -------------------------------------------------------------------------
    # Publish / subscribe
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for pipeline events.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        event = PipelineEvent(type=event_type, payload=payload)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Listener failed on {event_type} event: {e}")

    def _record(self, method: Callable[..., Any], *args: Any) -> None:
        try:
            method(*args)
        except Exception as e:
            logger.warning(f"Activity log write failed: {e}")

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    def ingest(self, sample: CrowdMetric) -> Optional[Alert]:
        """
        Accept one sample: window, activity log, alert evaluation.

        Samples arriving while monitoring is disabled are ignored.

        Returns:
            The alert raised for this sample, if any.
        """
        if not self._monitoring_enabled:
            return None

        try:
            self.window.append(sample)
        except OutOfOrderSampleError as e:
            logger.warning(f"Dropping sample: {e}")
            return None

        self._record(self.activity.log_metric, sample)
        self._publish(EVENT_METRIC, sample.model_dump(mode="json"))
        if self._first_data is not None:
            self._first_data.set()

        alert = self.evaluator.evaluate(sample)
        if alert is not None:
            self._record(self.activity.log_alert, alert)
            self._publish(EVENT_ALERT, alert.model_dump(mode="json"))
        return alert

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def acknowledge(self, alert_id: str) -> Optional[Alert]:
        """
        Operator acknowledgement of one alert.

        Unknown ids are a no-op.

        Returns:
            The removed alert, or None.
        """
        removed = self.board.acknowledge(alert_id)
        self._record(
            self.activity.log_user_action,
            "Alert acknowledged",
            {"alertId": alert_id},
        )
        if removed is not None:
            self._publish(EVENT_ALERT_ACKNOWLEDGED, {"id": alert_id})
        return removed

    def set_monitoring(self, enabled: bool) -> None:
        """Enable or disable future metric and analysis ticks."""
        self._monitoring_enabled = enabled
        self._record(self.activity.log_user_action, "Monitor toggle", {"enabled": enabled})
        self._record(
            self.activity.log_system_event,
            f"Monitoring {'enabled' if enabled else 'disabled'}",
            {"userAction": True},
        )
        self._publish(EVENT_MONITORING, {"enabled": enabled})
        logger.info(f"Monitoring {'enabled' if enabled else 'disabled'}")

    def select_site(self, site_id: str) -> None:
        """
        Switch the monitored site.

        Synthetic samples are stamped with the new site from the next tick on.
        The window, alerts and current analysis are kept.
        """
        previous = self.site_id
        self.site_id = site_id
        if self.source is not None:
            self.source.location = site_id
        self._record(
            self.activity.log_user_action,
            "Site selection changed",
            {"siteId": site_id, "previousSiteId": previous},
        )
        self._publish(EVENT_SITE, {"site_id": site_id})
        logger.info(f"Site changed: {previous} -> {site_id}")

    def select_video(self, asset: VideoAsset) -> None:
        """
        Select a video asset for analysis.

        Raises:
            InvalidAssetError: If the asset is not a video
        """
        self.estimator.select_asset(asset)
        self._record(
            self.activity.log_user_action,
            "Video selected",
            {"fileName": asset.filename},
        )

    async def analyze_video(self) -> Optional[CrowdAnalysisResult]:
        """
        Analyze the selected video.

        Returns:
            The result, or None if it was stale, failed, or nothing was selected.
        """
        asset = self.estimator.asset
        result = await self.estimator.analyze()
        if result is not None and asset is not None:
            self._record(self.activity.log_video_result, asset.filename, result)
            self._publish(
                EVENT_VIDEO_RESULT,
                {"file_name": asset.filename, **result.model_dump(mode="json")},
            )
        return result

    def _on_video_state(self, state: VideoState, asset: Optional[VideoAsset]) -> None:
        self._publish(
            EVENT_VIDEO_STATE,
            {"state": state.value, "file_name": asset.filename if asset else None},
        )

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    async def run_analysis_cycle(self) -> Optional[RiskAnalysis]:
        """
        Run one risk analysis cycle.

        Returns:
            The new current analysis, or None if the window was empty.
        """
        cycle = await self.orchestrator.run_cycle()
        if cycle is None:
            return None

        self._record(self.activity.log_analysis, cycle.analysis)
        if cycle.outcome == OUTCOME_FAILED:
            self._record(
                self.activity.log_system_event,
                "Analysis failed",
                {"error": cycle.error},
            )
        self._publish(
            EVENT_ANALYSIS,
            {"degraded": cycle.degraded, **cycle.analysis.model_dump(mode="json")},
        )
        return cycle.analysis

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start the metric and analysis loops."""
        if self._running:
            return

        self._running = True
        self._first_data = asyncio.Event()
        if self.window.size > 0:
            self._first_data.set()

        if self.feed_consumer is not None:
            self._tasks.append(
                asyncio.create_task(self.feed_consumer.run(), name="metric_feed")
            )
        elif self.source is not None:
            self._tasks.append(
                asyncio.create_task(self._metric_loop(), name="metric_loop")
            )

        self._tasks.append(
            asyncio.create_task(self._analysis_loop(), name="analysis_loop")
        )

        self._record(self.activity.log_system_event, "Monitoring pipeline started")
        logger.info(
            f"Pipeline started: metric_interval={self.metric_interval_sec}s, "
            f"analysis_interval={self.analysis_interval_sec}s"
        )

    async def stop(self) -> None:
        """Stop all loops. In-flight video analyses are not affected."""
        if not self._running:
            return

        logger.info("Stopping monitoring pipeline...")
        self._running = False

        if self.feed_consumer is not None:
            await self.feed_consumer.stop()

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

        self._record(self.activity.log_system_event, "Monitoring pipeline stopped")
        logger.info("Monitoring pipeline stopped")

    async def _metric_loop(self) -> None:
        logger.info("Metric loop started")
        while self._running:
            if self._monitoring_enabled:
                try:
                    self.ingest(self.source.next_sample())
                except Exception as e:
                    self.tick_error_count += 1
                    logger.error(f"Metric tick error: {e}")
            await asyncio.sleep(self.metric_interval_sec)

    async def _analysis_loop(self) -> None:
        await self._first_data.wait()
        logger.info("Analysis loop started")
        while self._running:
            if self._monitoring_enabled:
                try:
                    await self.run_analysis_cycle()
                except Exception as e:
                    self.analysis_error_count += 1
                    logger.error(f"Analysis cycle error: {e}")
            await asyncio.sleep(self.analysis_interval_sec)

    def get_metrics(self) -> Dict[str, Any]:
        """Operational metrics for observability."""
        metrics: Dict[str, Any] = {
            "running": self._running,
            "site_id": self.site_id,
            "monitoring_enabled": self._monitoring_enabled,
            "window": self.window.metrics(),
            "active_alerts": len(self.board),
            "alerts_raised": self.evaluator.alerts_raised,
            "analysis": self.orchestrator.get_metrics(),
            "video_state": self.estimator.state.value,
            "tick_errors": self.tick_error_count,
            "analysis_errors": self.analysis_error_count,
            "activity": self.activity.counts(),
        }
        if self.feed_consumer is not None:
            metrics["feed"] = self.feed_consumer.metrics.to_dict()
            metrics["feed_connected"] = self.feed_consumer.connected
        return metrics
