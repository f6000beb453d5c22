"""
Alert Lifecycle
===============

The bounded active-alert board.

Alerts enter through push() (called by the evaluator) and leave only
through acknowledge() (an operator command). There is no time-based expiry.

Ordering:
    Most-recent-first. When full, the oldest alert (the tail) is dropped,
    never the newest.
"""

import logging
import threading
from typing import List, Optional, Tuple

from crowdguard.models.alert import Alert


logger = logging.getLogger(__name__)


class AlertBoard:
    """
    Thread-safe bounded list of active alerts.

    Attributes:
        capacity: Maximum number of active alerts

    Example:
        board = AlertBoard(capacity=10)
        board.push(alert)
        board.acknowledge(alert.id)
    """

    def __init__(self, capacity: int = 10) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._capacity = capacity
        self._alerts: List[Alert] = []
        self._lock = threading.Lock()
        self._dropped_count: int = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def dropped_count(self) -> int:
        """Alerts dropped from the tail because the board was full."""
        return self._dropped_count

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)

    def push(self, alert: Alert) -> List[Alert]:
        """
        Insert an alert at the front, truncating the tail to capacity.

        Returns:
            Alerts dropped from the tail (oldest last).
        """
        with self._lock:
            self._alerts.insert(0, alert)
            dropped = self._alerts[self._capacity:]
            del self._alerts[self._capacity:]
            self._dropped_count += len(dropped)

        if dropped:
            logger.debug(f"Alert board full, dropped {len(dropped)} oldest alert(s)")
        return dropped

    def acknowledge(self, alert_id: str) -> Optional[Alert]:
        """
        Remove exactly one alert by identifier.

        Unknown identifiers are a no-op; acknowledging an alert that was
        already dropped or acknowledged must not fail the caller.

        Returns:
            The removed alert, or None if no alert had that id.
        """
        with self._lock:
            for i, alert in enumerate(self._alerts):
                if alert.id == alert_id:
                    del self._alerts[i]
                    return alert
        logger.info(f"Acknowledge ignored, unknown alert id: {alert_id}")
        return None

    def snapshot(self, k: Optional[int] = None) -> Tuple[Alert, ...]:
        """
        Get active alerts, most recent first.

        Args:
            k: Maximum number of alerts (None = all)
        """
        with self._lock:
            if k is None:
                return tuple(self._alerts)
            return tuple(self._alerts[:max(0, k)])

    def messages(self, k: int) -> List[str]:
        """Messages of the k most recent alerts."""
        return [alert.message for alert in self.snapshot(k)]
