"""
Activity Log
============

Fire-and-forget sink for activity events.

The core forwards every metric, alert, analysis, system event and operator
action here and never depends on the result. The shipped sink writes each
event to the Python logger and keeps a bounded in-memory tail for the
HTTP surface; durable storage is left to an external collaborator.
"""

import itertools
import logging
import threading
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from crowdguard.models.activity import ActivityEvent, ActivityKind
from crowdguard.models.alert import Alert, AlertSeverity
from crowdguard.models.analysis import CrowdAnalysisResult, RiskAnalysis
from crowdguard.models.metric import CrowdMetric


logger = logging.getLogger(__name__)


class ActivityLog:
    """
    Bounded in-memory activity log.

    Attributes:
        max_entries: Number of events retained for recent()

    Example:
        activity = ActivityLog(max_entries=500)
        activity.log_metric(metric)
        activity.log_user_action("Alert acknowledged", {"alertId": "A-1"})
    """

    def __init__(self, max_entries: int = 500) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self.max_entries = max_entries
        self._entries: Deque[ActivityEvent] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._counts: Dict[ActivityKind, int] = {kind: 0 for kind in ActivityKind}

    def record(self, event: ActivityEvent) -> None:
        """Store one event and write it to the logger."""
        with self._lock:
            self._entries.append(event)
            self._counts[event.kind] += 1

        level = logging.DEBUG if event.kind == ActivityKind.METRIC else logging.INFO
        logger.log(level, f"[{event.kind.value}] {event.data}")

    def _emit(
        self,
        kind: ActivityKind,
        data: Dict[str, Any],
        location: Optional[str] = None,
        severity: Optional[AlertSeverity] = None,
    ) -> ActivityEvent:
        event = ActivityEvent(
            id=f"EVT-{next(self._ids)}",
            timestamp=time.time(),
            kind=kind,
            data=data,
            location=location,
            severity=severity,
        )
        self.record(event)
        return event

    def log_metric(self, metric: CrowdMetric) -> ActivityEvent:
        return self._emit(
            ActivityKind.METRIC,
            metric.model_dump(mode="json"),
            location=metric.location,
        )

    def log_alert(self, alert: Alert) -> ActivityEvent:
        return self._emit(
            ActivityKind.ALERT,
            alert.model_dump(mode="json"),
            location=alert.location,
            severity=alert.severity,
        )

    def log_analysis(self, analysis: RiskAnalysis) -> ActivityEvent:
        return self._emit(
            ActivityKind.ANALYSIS,
            analysis.model_dump(mode="json"),
            severity=analysis.severity,
        )

    def log_video_result(self, filename: str, result: CrowdAnalysisResult) -> ActivityEvent:
        data = {"fileName": filename, **result.model_dump(mode="json")}
        return self._emit(ActivityKind.ANALYSIS, data, location=result.location)

    def log_system_event(self, message: str, details: Optional[Dict[str, Any]] = None) -> ActivityEvent:
        return self._emit(ActivityKind.SYSTEM, {"message": message, **(details or {})})

    def log_user_action(self, action: str, details: Optional[Dict[str, Any]] = None) -> ActivityEvent:
        return self._emit(ActivityKind.USER_ACTION, {"action": action, **(details or {})})

    def recent(self, limit: Optional[int] = None, kind: Optional[ActivityKind] = None) -> List[ActivityEvent]:
        """
        Get the most recent events, oldest first.

        Args:
            limit: Maximum number of events (None = all retained)
            kind: Only events of this kind
        """
        with self._lock:
            entries = list(self._entries)
        if kind is not None:
            entries = [e for e in entries if e.kind == kind]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries

    def counts(self) -> Dict[str, int]:
        """Total events recorded per kind (including evicted ones)."""
        with self._lock:
            return {kind.value: n for kind, n in self._counts.items()}
