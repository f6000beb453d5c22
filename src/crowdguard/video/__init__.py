"""
Video Module
============

Head-count and gender estimation for uploaded video clips.

Components:
    - frames.py: OpenCV frame sampling at interior time points
    - inference.py: Per-frame inference contract and backends
    - aggregate.py: Max/mean aggregation into one CrowdAnalysisResult
    - estimator.py: State machine with last-request-wins semantics
"""

from crowdguard.video.aggregate import aggregate_frame_counts, fallback_result, split_counts
from crowdguard.video.estimator import InvalidAssetError, VideoCrowdEstimator
from crowdguard.video.frames import FrameExtractionError, extract_frames, sample_time_points
from crowdguard.video.inference import (
    FrameInference,
    GeminiFrameInference,
    InferenceError,
    MockFrameInference,
)

__all__ = [
    "aggregate_frame_counts",
    "fallback_result",
    "split_counts",
    "InvalidAssetError",
    "VideoCrowdEstimator",
    "FrameExtractionError",
    "extract_frames",
    "sample_time_points",
    "FrameInference",
    "GeminiFrameInference",
    "InferenceError",
    "MockFrameInference",
]
