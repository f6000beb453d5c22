#!/usr/bin/env python3
"""
Metric Feed Integration Check
=============================

Standalone script to exercise MetricFeedConsumer against a live
camera-analytics feed.

This script:
    1. Connects to a running metric feed
    2. Feeds every accepted sample into a MetricWindow and AlertEvaluator
    3. Logs ingestion stats every report interval
    4. Reports final summary

Prerequisites:
    - A metric feed must be running at the configured URL
    - Install the package: pip install -e .

Usage:
    python scripts/feed_integration.py --duration 120
    python scripts/feed_integration.py --url ws://localhost:8000/ws/metrics
"""

import argparse
import asyncio
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from crowdguard.alerts import AlertBoard, AlertEvaluator
from crowdguard.source import MetricFeedConsumer, MetricWindow


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_check(url: str, duration: int, report_interval: int) -> dict:
    """
    Consume the feed for a fixed duration.

    Args:
        url: WebSocket URL of the metric feed
        duration: Run time in seconds
        report_interval: Seconds between progress reports

    Returns:
        Final metrics dict
    """
    logger.info("=" * 60)
    logger.info("Metric Feed Integration Check")
    logger.info("=" * 60)
    logger.info(f"Feed URL: {url}")
    logger.info(f"Duration: {duration} seconds")
    logger.info("=" * 60)

    window = MetricWindow(capacity=20)
    board = AlertBoard(capacity=10)
    evaluator = AlertEvaluator(board)

    def sink(sample) -> None:
        window.append(sample)
        evaluator.evaluate(sample)

    consumer = MetricFeedConsumer(url=url, sink=sink, reconnect_backoff_ms=500)
    consumer_task = asyncio.create_task(consumer.run())

    start_time = time.time()
    last_report_time = start_time
    last_count = 0

    try:
        while time.time() - start_time < duration:
            since_report = time.time() - last_report_time
            if since_report >= report_interval:
                metrics = consumer.metrics
                rate = (metrics.samples_accepted - last_count) / since_report
                latest = window.latest()

                logger.info("-" * 40)
                logger.info(f"Progress Report (elapsed: {time.time() - start_time:.0f}s)")
                logger.info(f"  Connected: {consumer.connected}")
                logger.info(f"  Samples accepted: {metrics.samples_accepted} ({rate:.2f}/s)")
                logger.info(f"  Parse errors: {metrics.parse_errors}")
                logger.info(f"  Out of order: {metrics.out_of_order}")
                logger.info(f"  Reconnects: {metrics.reconnect_count}")
                logger.info(f"  Active alerts: {len(board)}")
                if latest is not None:
                    logger.info(f"  Latest density: {latest.density:.2f} at {latest.location}")

                last_report_time = time.time()
                last_count = metrics.samples_accepted

            await asyncio.sleep(0.5)

    except KeyboardInterrupt:
        logger.info("Check interrupted by user")
    finally:
        await consumer.stop()
        try:
            await asyncio.wait_for(consumer_task, timeout=5.0)
        except asyncio.TimeoutError:
            consumer_task.cancel()
            try:
                await consumer_task
            except asyncio.CancelledError:
                pass

    total_time = time.time() - start_time
    metrics = consumer.metrics

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Messages received: {metrics.messages_received}")
    logger.info(f"Samples accepted: {metrics.samples_accepted}")
    logger.info(f"Parse errors: {metrics.parse_errors}")
    logger.info(f"Out of order: {metrics.out_of_order}")
    logger.info(f"Reconnections: {metrics.reconnect_count}")
    logger.info(f"Alerts raised: {evaluator.alerts_raised}")
    logger.info("=" * 60)

    if metrics.samples_accepted > 0:
        logger.info("CHECK PASSED - Samples received")
    else:
        logger.error("CHECK FAILED - No samples received")

    return {
        "duration": total_time,
        **metrics.to_dict(),
        "alerts_raised": evaluator.alerts_raised,
    }


def main():
    parser = argparse.ArgumentParser(description="Integration check for the metric feed")
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("CROWDGUARD_FEED_URL", "ws://localhost:8000/ws/metrics"),
        help="WebSocket URL of the metric feed",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=120,
        help="Run time in seconds (default: 120)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=10,
        help="Seconds between progress reports (default: 10)",
    )

    args = parser.parse_args()

    result = asyncio.run(run_check(
        url=args.url,
        duration=args.duration,
        report_interval=args.report_interval,
    ))

    sys.exit(0 if result["samples_accepted"] > 0 else 1)


if __name__ == "__main__":
    main()
