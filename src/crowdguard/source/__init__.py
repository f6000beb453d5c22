"""
Source Module
=============

Metric ingestion components:
    - SyntheticMetricSource: Random bounded-range sample generator
    - MetricFeedConsumer: WebSocket camera-analytics feed client
    - MetricWindow: Bounded, time-ordered recent-history buffer
"""

from crowdguard.source.generator import MetricRanges, SyntheticMetricSource
from crowdguard.source.window import MetricWindow, OutOfOrderSampleError
from crowdguard.source.consumer import FeedConsumerMetrics, MetricFeedConsumer


__all__ = [
    "MetricRanges",
    "SyntheticMetricSource",
    "MetricWindow",
    "OutOfOrderSampleError",
    "MetricFeedConsumer",
    "FeedConsumerMetrics",
]
