"""
Pipeline Tests
==============

Tests for the monitoring pipeline state container and the activity log.
"""

import asyncio
import random

import pytest

from conftest import make_alert, make_metric
from crowdguard.analysis import OFFLINE_ANALYSIS
from crowdguard.models.activity import ActivityKind
from crowdguard.models.video import VideoAsset
from crowdguard.observability import ActivityLog
from crowdguard.pipeline import (
    EVENT_ALERT,
    EVENT_ALERT_ACKNOWLEDGED,
    EVENT_ANALYSIS,
    EVENT_METRIC,
    EVENT_MONITORING,
    EVENT_SITE,
    EVENT_VIDEO_RESULT,
    EVENT_VIDEO_STATE,
)
from crowdguard.source import SyntheticMetricSource
from crowdguard.video import InvalidAssetError


class TestActivityLog:
    """Tests for ActivityLog."""

    def test_records_kinds(self):
        log = ActivityLog()
        log.log_metric(make_metric())
        log.log_alert(make_alert("A-1"))
        log.log_user_action("Alert acknowledged", {"alertId": "A-1"})

        events = log.recent()
        assert [e.kind for e in events] == [
            ActivityKind.METRIC,
            ActivityKind.ALERT,
            ActivityKind.USER_ACTION,
        ]
        assert events[0].location == "MAIN_GATE"
        assert events[2].data == {"action": "Alert acknowledged", "alertId": "A-1"}

    def test_bounded_tail_keeps_counts(self):
        log = ActivityLog(max_entries=3)
        for _ in range(5):
            log.log_system_event("tick")

        assert len(log.recent()) == 3
        assert log.counts()["SYSTEM"] == 5

    def test_recent_filters(self):
        log = ActivityLog()
        log.log_system_event("a")
        log.log_metric(make_metric())
        log.log_system_event("b")

        system = log.recent(kind=ActivityKind.SYSTEM)
        assert [e.data["message"] for e in system] == ["a", "b"]
        assert len(log.recent(limit=1)) == 1


class TestMonitoringPipeline:
    """Tests for MonitoringPipeline."""

    def _events(self, pipeline):
        events = []
        pipeline.subscribe(events.append)
        return events

    def test_ingest_updates_window_and_publishes(self, pipeline):
        events = self._events(pipeline)
        sample = make_metric(density=3.0)

        assert pipeline.ingest(sample) is None
        assert pipeline.window.latest() == sample
        assert [e.type for e in events] == [EVENT_METRIC]
        assert pipeline.activity.counts()["METRIC"] == 1

    def test_ingest_raises_alert(self, pipeline):
        """Verify an over-threshold sample with a winning draw raises an alert."""
        events = self._events(pipeline)
        alert = pipeline.ingest(make_metric(density=5.6))

        assert alert is not None
        assert pipeline.board.snapshot() == (alert,)
        assert [e.type for e in events] == [EVENT_METRIC, EVENT_ALERT]
        assert events[1].payload["id"] == alert.id

    def test_ingest_ignored_when_disabled(self, pipeline):
        pipeline.set_monitoring(False)
        assert pipeline.ingest(make_metric()) is None
        assert pipeline.window.size == 0

    def test_out_of_order_sample_dropped(self, pipeline):
        pipeline.ingest(make_metric(timestamp=500.0))
        assert pipeline.ingest(make_metric(timestamp=400.0)) is None
        assert pipeline.window.size == 1

    def test_acknowledge(self, pipeline):
        events = self._events(pipeline)
        pipeline.board.push(make_alert("A-1"))

        assert pipeline.acknowledge("A-1").id == "A-1"
        assert pipeline.acknowledge("A-1") is None
        assert len(pipeline.board) == 0
        assert [e.type for e in events] == [EVENT_ALERT_ACKNOWLEDGED]
        actions = pipeline.activity.recent(kind=ActivityKind.USER_ACTION)
        assert len(actions) == 2

    def test_set_monitoring_logs_and_publishes(self, pipeline):
        events = self._events(pipeline)
        pipeline.set_monitoring(False)

        assert pipeline.monitoring_enabled is False
        assert events[-1].type == EVENT_MONITORING
        assert events[-1].payload == {"enabled": False}
        counts = pipeline.activity.counts()
        assert counts["USER_ACTION"] == 1
        assert counts["SYSTEM"] == 1

    def test_select_site(self, pipeline):
        """Verify a site change is logged, published and stamped on new samples."""
        pipeline.source = SyntheticMetricSource(rng=random.Random(5))
        events = self._events(pipeline)

        pipeline.select_site("NORTH_GATE")

        assert pipeline.site_id == "NORTH_GATE"
        assert pipeline.source.next_sample().location == "NORTH_GATE"
        assert events[-1].type == EVENT_SITE
        assert events[-1].payload == {"site_id": "NORTH_GATE"}
        action = pipeline.activity.recent(kind=ActivityKind.USER_ACTION)[-1]
        assert action.data["action"] == "Site selection changed"
        assert action.data["previousSiteId"] == "MAIN_GATE"
        assert pipeline.snapshot()["site_id"] == "NORTH_GATE"

    def test_failing_listener_does_not_break_core(self, pipeline):
        def broken(event):
            raise RuntimeError("listener bug")

        pipeline.subscribe(broken)
        events = self._events(pipeline)
        pipeline.ingest(make_metric())

        assert pipeline.window.size == 1
        assert len(events) == 1

    def test_unsubscribe(self, pipeline):
        events = []
        unsubscribe = pipeline.subscribe(events.append)
        unsubscribe()
        pipeline.ingest(make_metric())
        assert events == []

    def test_snapshot(self, pipeline):
        pipeline.ingest(make_metric())
        snap = pipeline.snapshot()
        assert len(snap["metrics"]) == 1
        assert snap["analysis"]["severity"] == "LOW"
        assert snap["video"]["state"] == "IDLE"

    @pytest.mark.asyncio
    async def test_analysis_cycle_publishes(self, pipeline):
        events = self._events(pipeline)
        assert await pipeline.run_analysis_cycle() is None

        pipeline.ingest(make_metric())
        analysis = await pipeline.run_analysis_cycle()

        assert analysis == OFFLINE_ANALYSIS
        assert pipeline.current_analysis == OFFLINE_ANALYSIS
        assert events[-1].type == EVENT_ANALYSIS
        assert events[-1].payload["degraded"] is True
        assert pipeline.activity.counts()["ANALYSIS"] == 1

    @pytest.mark.asyncio
    async def test_video_flow(self, pipeline):
        """Verify selection and analysis publish state changes and the result."""
        pipeline.estimator._extractor = lambda path, k, quality: []
        events = self._events(pipeline)

        with pytest.raises(InvalidAssetError):
            pipeline.select_video(VideoAsset("/tmp/a.txt", "a.txt", "text/plain"))

        pipeline.select_video(VideoAsset("/tmp/a.mp4", "a.mp4", "video/mp4"))
        result = await pipeline.analyze_video()

        assert result.total_people == 13
        assert pipeline.current_video_result == result
        states = [e.payload["state"] for e in events if e.type == EVENT_VIDEO_STATE]
        assert states == ["FILE_SELECTED", "ANALYZING", "COMPLETED"]
        assert events[-1].type == EVENT_VIDEO_RESULT
        assert events[-1].payload["file_name"] == "a.mp4"

    @pytest.mark.asyncio
    async def test_start_and_stop(self, pipeline):
        """Verify the loops produce samples and an analysis, then stop cleanly."""
        pipeline.source = SyntheticMetricSource(rng=random.Random(5))
        pipeline.metric_interval_sec = 0.01
        pipeline.analysis_interval_sec = 0.01

        await pipeline.start()
        assert pipeline.running is True
        await asyncio.sleep(0.2)
        await pipeline.stop()

        assert pipeline.running is False
        assert pipeline.window.size > 0
        assert pipeline.orchestrator.cycles_run >= 1
        assert pipeline.current_analysis == OFFLINE_ANALYSIS

        size = pipeline.window.size
        await asyncio.sleep(0.05)
        assert pipeline.window.size == size

    @pytest.mark.asyncio
    async def test_disabled_monitor_produces_no_samples(self, pipeline):
        pipeline.source = SyntheticMetricSource(rng=random.Random(5))
        pipeline.metric_interval_sec = 0.01
        pipeline.set_monitoring(False)

        await pipeline.start()
        await asyncio.sleep(0.05)
        await pipeline.stop()

        assert pipeline.window.size == 0
        assert pipeline.get_metrics()["monitoring_enabled"] is False
