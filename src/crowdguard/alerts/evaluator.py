"""
Alert Evaluator
===============

Decides, per incoming sample, whether to raise an alert.

Policy:
    density > density_threshold AND rng.random() > trigger_cutoff
        → one HIGH / HIGH_DENSITY alert pushed to the front of the board

With the defaults (5.0, 0.7) roughly 30% of high-density samples raise an
alert. Triggering is a per-sample probability, not a guarantee; the random
draw is only taken when the density condition holds.
"""

import itertools
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

from crowdguard.alerts.lifecycle import AlertBoard
from crowdguard.models.alert import Alert, AlertCategory, AlertSeverity
from crowdguard.models.metric import CrowdMetric


logger = logging.getLogger(__name__)


@dataclass
class AlertPolicy:
    """
    Alert trigger configuration.

    Loaded from configuration file.
    """

    density_threshold: float = 5.0
    trigger_cutoff: float = 0.7
    location: str = "East Corridor 4B"
    message: str = "Density exceeded safe threshold (5.2 p/m²). Bottleneck forming."
    severity: AlertSeverity = AlertSeverity.HIGH
    category: AlertCategory = AlertCategory.HIGH_DENSITY


class AlertEvaluator:
    """
    Stochastic high-density alert policy.

    Attributes:
        policy: Trigger configuration
        board: Active-alert board alerts are pushed onto
        alerts_raised: Number of alerts created
    """

    def __init__(
        self,
        board: AlertBoard,
        policy: Optional[AlertPolicy] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize alert evaluator.

        Args:
            board: Board receiving new alerts
            policy: Trigger configuration (defaults if None)
            rng: Random source for the trigger draw
            clock: Timestamp provider for alert creation
        """
        self.board = board
        self.policy = policy or AlertPolicy()
        self._rng = rng or random.Random()
        self._clock = clock
        self._sequence = itertools.count(1)
        self.alerts_raised: int = 0

        logger.info(
            f"AlertEvaluator initialized: density>{self.policy.density_threshold}, "
            f"cutoff={self.policy.trigger_cutoff}"
        )

    def _next_id(self, timestamp: float) -> str:
        return f"{int(timestamp * 1000)}-{next(self._sequence)}"

    def evaluate(self, sample: CrowdMetric) -> Optional[Alert]:
        """
        Evaluate one sample.

        Args:
            sample: Newest metric

        Returns:
            The created alert (already on the board), or None.
        """
        if sample.density <= self.policy.density_threshold:
            return None
        if self._rng.random() <= self.policy.trigger_cutoff:
            return None

        now = self._clock()
        alert = Alert(
            id=self._next_id(now),
            timestamp=now,
            location=self.policy.location,
            severity=self.policy.severity,
            message=self.policy.message,
            category=self.policy.category,
        )
        self.board.push(alert)
        self.alerts_raised += 1

        logger.warning(
            f"Alert raised: {alert.category.value} at {alert.location} "
            f"(density={sample.density:.2f})"
        )
        return alert
