"""
Video Models
============

Internal data types for the video crowd-estimation pipeline.
"""

from dataclasses import dataclass
from enum import Enum


class VideoState(str, Enum):
    """
    Video estimator lifecycle.

    IDLE → FILE_SELECTED → ANALYZING → {COMPLETED | FAILED}

    FAILED returns control to FILE_SELECTED with the asset retained.
    Selecting a new asset from any state moves to FILE_SELECTED.
    """

    IDLE = "IDLE"
    FILE_SELECTED = "FILE_SELECTED"
    ANALYZING = "ANALYZING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class VideoAsset:
    """
    A video file selected by the operator.

    Attributes:
        path: Local filesystem path of the video
        filename: Original file name (for display and logging)
        content_type: MIME type reported on upload
    """

    path: str
    filename: str
    content_type: str

    @property
    def is_video(self) -> bool:
        """Whether the declared content type is a video type."""
        return self.content_type.lower().startswith("video/")


@dataclass(frozen=True, slots=True)
class FrameCounts:
    """
    Per-frame inference output.

    Attributes:
        people_count: Distinct people visible in the frame
        subgroup_a: Count of the first gender group
        subgroup_b: Count of the second gender group
    """

    people_count: int
    subgroup_a: int
    subgroup_b: int

    def __post_init__(self) -> None:
        """Validate invariants."""
        if min(self.people_count, self.subgroup_a, self.subgroup_b) < 0:
            raise ValueError("frame counts must be non-negative")


ZERO_COUNTS = FrameCounts(people_count=0, subgroup_a=0, subgroup_b=0)


@dataclass(frozen=True, slots=True)
class ExtractedFrame:
    """
    A still frame captured from a video.

    Attributes:
        index: Position of the time point (0-based)
        time_sec: Capture offset in seconds
        jpeg: JPEG-encoded image bytes
    """

    index: int
    time_sec: float
    jpeg: bytes

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the image."""
        return (
            f"ExtractedFrame(index={self.index}, "
            f"time_sec={self.time_sec:.2f}, bytes={len(self.jpeg)})"
        )
