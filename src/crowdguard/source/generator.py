"""
Synthetic Metric Source
=======================

Generates crowd-metric samples from configured ranges.

This is a stand-in for a camera-analytics feed. Downstream components only
rely on "one bounded-range sample per tick while enabled".

Design Rules:
    - Random draws come from an injectable random.Random
    - Timestamps come from an injectable clock and never go backwards
    - No I/O, no scheduling (the pipeline owns the tick loop)
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

from crowdguard.models.metric import CrowdMetric


logger = logging.getLogger(__name__)


@dataclass
class MetricRanges:
    """
    Half-open sampling ranges [min, max) for synthetic metrics.

    flow_rate is drawn as an integer in [flow_min, flow_max).
    """

    density_min: float = 2.0
    density_max: float = 6.0
    flow_min: int = 40
    flow_max: int = 100
    velocity_min: float = 1.0
    velocity_max: float = 1.8
    anomaly_min: float = 0.0
    anomaly_max: float = 100.0


class SyntheticMetricSource:
    """
    Random crowd-metric generator for one site.

    Attributes:
        location: Site identifier stamped on every sample
        ranges: Sampling ranges
        samples_generated: Number of samples produced so far

    Example:
        source = SyntheticMetricSource("MAIN_GATE", rng=random.Random(7))
        metric = source.next_sample()
    """

    def __init__(
        self,
        location: str = "MAIN_GATE",
        ranges: Optional[MetricRanges] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize synthetic source.

        Args:
            location: Site identifier
            ranges: Sampling ranges (defaults if None)
            rng: Random source (a fresh random.Random if None)
            clock: Timestamp provider
        """
        self.location = location
        self.ranges = ranges or MetricRanges()
        self._rng = rng or random.Random()
        self._clock = clock
        self._last_timestamp: float = 0.0
        self.samples_generated: int = 0

        logger.info(
            f"SyntheticMetricSource initialized: location={location}, "
            f"density=[{self.ranges.density_min}, {self.ranges.density_max})"
        )

    def _uniform(self, low: float, high: float) -> float:
        return low + self._rng.random() * (high - low)

    def next_sample(self) -> CrowdMetric:
        """
        Draw one sample.

        Returns:
            CrowdMetric with values inside the configured ranges.
        """
        r = self.ranges
        timestamp = max(self._clock(), self._last_timestamp)
        self._last_timestamp = timestamp

        flow_span = max(0, r.flow_max - r.flow_min)
        metric = CrowdMetric(
            location=self.location,
            density=self._uniform(r.density_min, r.density_max),
            flow_rate=r.flow_min + int(self._rng.random() * flow_span),
            velocity=self._uniform(r.velocity_min, r.velocity_max),
            anomaly_score=self._uniform(r.anomaly_min, r.anomaly_max),
            timestamp=timestamp,
        )
        self.samples_generated += 1
        return metric
