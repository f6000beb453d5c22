"""
Data Models
===========

Pydantic models and typed records for CrowdGuard.

Models:
    Metrics:
        - CrowdMetric: One crowd observation for a site

    Alerts:
        - AlertSeverity: LOW < MEDIUM < HIGH < CRITICAL
        - AlertCategory: Alert cause tag
        - Alert: Operator-facing alert

    Analysis:
        - RiskAnalysis: Current risk narrative
        - CrowdCategory, GenderBreakdown, CrowdAnalysisResult: Video estimate

    Activity:
        - ActivityKind, ActivityEvent: Activity log entries

    Video:
        - VideoState, VideoAsset, FrameCounts, ExtractedFrame
"""

from crowdguard.models.metric import CrowdMetric
from crowdguard.models.alert import Alert, AlertCategory, AlertSeverity
from crowdguard.models.analysis import (
    CrowdAnalysisResult,
    CrowdCategory,
    GenderBreakdown,
    RiskAnalysis,
    classify_crowd,
)
from crowdguard.models.activity import ActivityEvent, ActivityKind
from crowdguard.models.video import ExtractedFrame, FrameCounts, VideoAsset, VideoState

__all__ = [
    # Metrics
    "CrowdMetric",
    # Alerts
    "Alert",
    "AlertCategory",
    "AlertSeverity",
    # Analysis
    "RiskAnalysis",
    "CrowdCategory",
    "GenderBreakdown",
    "CrowdAnalysisResult",
    "classify_crowd",
    # Activity
    "ActivityEvent",
    "ActivityKind",
    # Video
    "VideoState",
    "VideoAsset",
    "FrameCounts",
    "ExtractedFrame",
]
