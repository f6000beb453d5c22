"""
Test Configuration
==================

Pytest fixtures and test helpers for CrowdGuard.
"""

import itertools

import pytest

from crowdguard.alerts import AlertBoard, AlertEvaluator
from crowdguard.analysis import RiskAnalysisOrchestrator
from crowdguard.models.alert import Alert, AlertCategory, AlertSeverity
from crowdguard.models.metric import CrowdMetric
from crowdguard.observability import ActivityLog
from crowdguard.pipeline import MonitoringPipeline
from crowdguard.source import MetricWindow
from crowdguard.video import MockFrameInference, VideoCrowdEstimator


class StubRandom:
    """Random source returning scripted draws, counting calls."""

    def __init__(self, *values: float) -> None:
        self._values = itertools.cycle(values) if values else None
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return next(self._values)


_clock = itertools.count(1_707_321_234)


def make_metric(density: float = 3.0, timestamp: float = None, **overrides) -> CrowdMetric:
    """Build a CrowdMetric with increasing default timestamps."""
    fields = {
        "location": "MAIN_GATE",
        "density": density,
        "flow_rate": 72,
        "velocity": 1.3,
        "anomaly_score": 18.5,
        "timestamp": float(next(_clock)) if timestamp is None else timestamp,
    }
    fields.update(overrides)
    return CrowdMetric(**fields)


def make_alert(alert_id: str, message: str = "Density exceeded safe threshold") -> Alert:
    return Alert(
        id=alert_id,
        timestamp=1707321234.0,
        location="East Corridor 4B",
        severity=AlertSeverity.HIGH,
        message=message,
        category=AlertCategory.HIGH_DENSITY,
    )


@pytest.fixture
def sample_metric_message():
    """Provide a sample metric feed message for testing."""
    return {
        "location": "MAIN_GATE",
        "density": 4.2,
        "flow_rate": 72,
        "velocity": 1.3,
        "anomaly_score": 18.5,
        "timestamp": 1707321234.567,
    }


@pytest.fixture
def window():
    return MetricWindow(capacity=20)


@pytest.fixture
def board():
    return AlertBoard(capacity=10)


@pytest.fixture
def pipeline(window, board):
    """Pipeline wired with offline analysis and mock video inference."""
    evaluator = AlertEvaluator(board, rng=StubRandom(0.99))
    orchestrator = RiskAnalysisOrchestrator(window, board, scorer=None)
    estimator = VideoCrowdEstimator(MockFrameInference())
    return MonitoringPipeline(
        window,
        board,
        evaluator,
        orchestrator,
        estimator,
        ActivityLog(max_entries=100),
    )
