"""
CrowdGuard
==========

Crowd-safety monitoring core for large public gatherings.

This package ingests crowd-density metrics for a monitored site, raises
density alerts, keeps an AI-assisted risk analysis current, and estimates
head counts from operator-uploaded video.

Components:
    - source: Metric sources (synthetic generator, WebSocket feed) and window
    - alerts: Stochastic density alert policy and the active-alert board
    - analysis: LangGraph risk-analysis cycle with deterministic fallbacks
    - video: Frame sampling, per-frame inference and aggregation
    - observability: Activity log
    - pipeline: Process-wide state container with publish/subscribe

Example:
    from crowdguard.config import settings
    from crowdguard.main import build_pipeline

    pipeline = build_pipeline(settings)
    await pipeline.start()
"""

__version__ = "0.1.0"
__author__ = "CrowdGuard Project"

__all__ = [
    "__version__",
]
