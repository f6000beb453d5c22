"""
Metric Window
=============

Bounded, time-ordered buffer of the most recent crowd metrics.

The window feeds both the alert evaluator (one sample at a time) and the
risk analysis orchestrator (recent snapshots).

Design Rules:
    - Fixed maximum size (drops oldest on overflow)
    - Insertion order is time order; older samples are rejected
    - Snapshots are immutable copies taken under the same lock as writes
    - Does NOT process or modify samples
"""

import logging
import threading
from collections import deque
from typing import Deque, Optional, Tuple

from crowdguard.models.metric import CrowdMetric


logger = logging.getLogger(__name__)


class OutOfOrderSampleError(ValueError):
    """Raised when a sample is older than the newest sample in the window."""
    pass


class MetricWindow:
    """
    Thread-safe bounded window of crowd metrics.

    Single writer (the metric source), many readers. Readers always get
    a tuple copy, never a view into the live buffer.

    Attributes:
        capacity: Maximum number of samples retained
        evicted_count: Number of samples dropped due to overflow

    Example:
        window = MetricWindow(capacity=20)
        window.append(metric)
        recent = window.snapshot(5)
    """

    def __init__(self, capacity: int = 20) -> None:
        """
        Initialize metric window.

        Args:
            capacity: Maximum samples to retain. Must be >= 1.
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._capacity = capacity
        self._samples: Deque[CrowdMetric] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._evicted_count: int = 0
        self._total_appended: int = 0

    @property
    def capacity(self) -> int:
        """Maximum window size."""
        return self._capacity

    @property
    def size(self) -> int:
        """Current number of samples in the window."""
        with self._lock:
            return len(self._samples)

    @property
    def evicted_count(self) -> int:
        """Number of samples dropped due to overflow."""
        return self._evicted_count

    @property
    def total_appended(self) -> int:
        """Total samples ever appended."""
        return self._total_appended

    def __len__(self) -> int:
        return self.size

    def append(self, sample: CrowdMetric) -> bool:
        """
        Add a sample, evicting the oldest if the window is full.

        Args:
            sample: Metric to add

        Returns:
            True if added without eviction, False if the oldest was dropped.

        Raises:
            OutOfOrderSampleError: If the sample is older than the newest one.
        """
        with self._lock:
            if self._samples and sample.timestamp < self._samples[-1].timestamp:
                raise OutOfOrderSampleError(
                    f"sample at {sample.timestamp:.3f} is older than "
                    f"newest at {self._samples[-1].timestamp:.3f}"
                )

            evicting = len(self._samples) == self._capacity
            self._samples.append(sample)
            self._total_appended += 1

            if evicting:
                self._evicted_count += 1
                logger.debug(
                    f"Window full, evicted oldest sample. "
                    f"Total evicted: {self._evicted_count}"
                )
            return not evicting

    def snapshot(self, k: Optional[int] = None) -> Tuple[CrowdMetric, ...]:
        """
        Get the most recent samples in arrival order.

        Args:
            k: Number of samples. None = whole window. Clamped to capacity.

        Returns:
            Immutable tuple of at most k samples, oldest first.
        """
        with self._lock:
            if k is None:
                return tuple(self._samples)
            k = max(0, min(k, self._capacity))
            if k == 0:
                return ()
            return tuple(self._samples)[-k:]

    def latest(self) -> Optional[CrowdMetric]:
        """Most recent sample, or None if the window is empty."""
        with self._lock:
            return self._samples[-1] if self._samples else None

    def clear(self) -> int:
        """
        Remove all samples.

        Returns:
            Number of samples cleared.
        """
        with self._lock:
            cleared = len(self._samples)
            self._samples.clear()
            return cleared

    def metrics(self) -> dict:
        """
        Get window metrics for observability.

        Returns:
            Dict with size, capacity, evicted_count, total_appended
        """
        return {
            "size": self.size,
            "capacity": self._capacity,
            "evicted_count": self._evicted_count,
            "total_appended": self._total_appended,
        }
