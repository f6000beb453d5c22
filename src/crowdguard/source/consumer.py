"""
Metric Feed Consumer
====================

WebSocket client for consuming crowd metrics from a camera-analytics feed.

This module provides the MetricFeedConsumer class which:
    - Connects to the analytics feed WebSocket endpoint
    - Receives and validates metric messages against CrowdMetric
    - Enforces timestamp ordering (older samples are dropped)
    - Handles reconnection with a fixed backoff
    - Hands validated samples to a sink callable

Message Contract:
    {
        "location": "MAIN_GATE",
        "density": 4.2,
        "flow_rate": 72,
        "velocity": 1.3,
        "anomaly_score": 18.5,
        "timestamp": 1770500938.284
    }

Design Rules:
    - Logs validation warnings but keeps consuming
    - Counts and logs sink failures without dropping the connection
    - Reconnects automatically on disconnect
    - Exposes metrics for health monitoring
"""

import asyncio
import logging
from typing import Callable, Optional

import websockets
from pydantic import ValidationError
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
)

from crowdguard.models.metric import CrowdMetric


logger = logging.getLogger(__name__)


MetricSink = Callable[[CrowdMetric], None]


class FeedConsumerMetrics:
    """Metrics for MetricFeedConsumer observability."""

    __slots__ = (
        "messages_received",
        "samples_accepted",
        "reconnect_count",
        "last_timestamp",
        "out_of_order",
        "parse_errors",
        "sink_errors",
    )

    def __init__(self) -> None:
        self.messages_received: int = 0
        self.samples_accepted: int = 0
        self.reconnect_count: int = 0
        self.last_timestamp: float = 0.0
        self.out_of_order: int = 0
        self.parse_errors: int = 0
        self.sink_errors: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "messages_received": self.messages_received,
            "samples_accepted": self.samples_accepted,
            "reconnect_count": self.reconnect_count,
            "last_timestamp": self.last_timestamp,
            "out_of_order": self.out_of_order,
            "parse_errors": self.parse_errors,
            "sink_errors": self.sink_errors,
        }


class MetricFeedConsumer:
    """
    WebSocket consumer for crowd-metric feeds.

    Attributes:
        url: WebSocket URL to connect to
        sink: Callable receiving each validated sample
        connected: Whether currently connected
        metrics: Operational metrics

    Example:
        consumer = MetricFeedConsumer(
            url="ws://localhost:8000/ws/metrics",
            sink=pipeline.ingest,
        )
        task = asyncio.create_task(consumer.run())

        # Later, stop gracefully
        await consumer.stop()
        await task
    """

    def __init__(
        self,
        url: str,
        sink: MetricSink,
        reconnect_backoff_ms: int = 500,
        max_reconnect_attempts: int = 0,
    ) -> None:
        """
        Initialize feed consumer.

        Args:
            url: WebSocket URL of the analytics feed
            sink: Receives validated samples in timestamp order
            reconnect_backoff_ms: Backoff between reconnect attempts
            max_reconnect_attempts: Max attempts (0 = unlimited)
        """
        self.url = url
        self.sink = sink
        self.reconnect_backoff_ms = reconnect_backoff_ms
        self.max_reconnect_attempts = max_reconnect_attempts

        self._websocket: Optional[object] = None
        self._connected: bool = False
        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()

        self.metrics = FeedConsumerMetrics()

    @property
    def connected(self) -> bool:
        """Whether currently connected to the feed."""
        return self._connected

    async def run(self) -> None:
        """
        Start consuming samples.

        Runs until stop() is called or the reconnect budget is exhausted.
        """
        self._running = True
        self._stop_event.clear()

        logger.info(f"MetricFeedConsumer starting, connecting to {self.url}")

        while self._running:
            try:
                await self._connect_and_consume()
            except Exception as e:
                if not self._running:
                    break

                logger.error(f"Feed connection error: {e}")
                self._connected = False

            if not self._running:
                break

            if (
                self.max_reconnect_attempts > 0
                and self.metrics.reconnect_count >= self.max_reconnect_attempts
            ):
                logger.error(
                    f"Max reconnect attempts ({self.max_reconnect_attempts}) exceeded"
                )
                break

            self.metrics.reconnect_count += 1
            backoff_sec = self.reconnect_backoff_ms / 1000.0
            logger.info(
                f"Reconnecting in {backoff_sec:.1f}s "
                f"(attempt {self.metrics.reconnect_count})"
            )

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=backoff_sec)
                break
            except asyncio.TimeoutError:
                pass

        self._running = False
        logger.info("MetricFeedConsumer stopped")

    async def stop(self) -> None:
        """Signal the run loop to exit and close the connection."""
        logger.info("MetricFeedConsumer stopping...")
        self._running = False
        self._stop_event.set()

        if self._websocket is not None:
            try:
                await self._websocket.close()
            except ConnectionClosed:
                pass

        self._connected = False

    async def _connect_and_consume(self) -> None:
        """Connect to the feed and consume messages until disconnect."""
        async with websockets.connect(
            self.url,
            ping_interval=20,
            ping_timeout=10,
            close_timeout=5,
        ) as ws:
            self._websocket = ws
            self._connected = True
            logger.info(f"Connected to metric feed: {self.url}")

            try:
                async for message in ws:
                    if not self._running:
                        break
                    self.handle_message(message)
            except ConnectionClosedOK:
                logger.info("Feed connection closed normally")
            except ConnectionClosedError as e:
                logger.warning(f"Feed connection closed with error: {e}")
                raise
            finally:
                self._connected = False
                self._websocket = None

    def handle_message(self, raw) -> Optional[CrowdMetric]:
        """
        Validate one raw message and forward it to the sink.

        Args:
            raw: JSON text (or bytes) from the WebSocket

        Returns:
            The accepted sample, or None if it was dropped.
        """
        self.metrics.messages_received += 1

        try:
            sample = CrowdMetric.model_validate_json(raw)
        except ValidationError as e:
            self.metrics.parse_errors += 1
            logger.error(f"Invalid metric message: {e.error_count()} error(s)")
            return None

        if sample.timestamp < self.metrics.last_timestamp:
            self.metrics.out_of_order += 1
            logger.warning(
                f"Timestamp went backwards: got {sample.timestamp:.3f}, "
                f"previous was {self.metrics.last_timestamp:.3f}; dropping sample"
            )
            return None

        self.metrics.last_timestamp = sample.timestamp
        self.metrics.samples_accepted += 1
        try:
            self.sink(sample)
        except Exception as e:
            self.metrics.sink_errors += 1
            logger.error(f"Metric sink failed for sample at {sample.timestamp:.3f}: {e}")
        return sample
