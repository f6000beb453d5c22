"""
Frame Extraction
================

Captures representative still frames from a video file.

Time Points:
    K frames evenly spaced across the duration, excluding the very start
    and end:  t_i = duration * i / (K + 1),  i = 1..K

Design Rules:
    - This is the ONLY place in the codebase that decodes video
    - Frames are returned in time-point order as JPEG bytes
    - A single unreadable time point is skipped, not fatal
    - An unopenable or zero-length video raises FrameExtractionError
    - Blocking (OpenCV); callers run it on a worker thread
"""

import logging
from typing import List

import cv2

from crowdguard.models.video import ExtractedFrame


logger = logging.getLogger(__name__)


class FrameExtractionError(Exception):
    """Raised when no frames can be taken from a video."""
    pass


def sample_time_points(duration: float, k: int) -> List[float]:
    """
    Evenly spaced interior time points.

    Args:
        duration: Video duration in seconds
        k: Number of time points

    Returns:
        K time points in seconds (empty if duration <= 0 or k < 1)
    """
    if duration <= 0 or k < 1:
        return []
    return [duration * i / (k + 1) for i in range(1, k + 1)]


def video_duration(capture: "cv2.VideoCapture") -> float:
    """Duration in seconds from frame count and FPS (0.0 if unknown)."""
    fps = capture.get(cv2.CAP_PROP_FPS)
    frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT)
    if not fps or fps <= 0 or not frame_count or frame_count <= 0:
        return 0.0
    return float(frame_count) / float(fps)


def extract_frames(path: str, k: int = 3, jpeg_quality: int = 80) -> List[ExtractedFrame]:
    """
    Extract up to K still frames from a video file.

    Args:
        path: Video file path
        k: Number of frames to sample
        jpeg_quality: JPEG quality (0-100)

    Returns:
        Extracted frames in time order (may be fewer than K)

    Raises:
        FrameExtractionError: If the video cannot be opened or has no duration
    """
    capture = cv2.VideoCapture(path)
    try:
        if not capture.isOpened():
            raise FrameExtractionError(f"Cannot open video: {path}")

        duration = video_duration(capture)
        if duration <= 0:
            raise FrameExtractionError(f"Video has no measurable duration: {path}")

        frames: List[ExtractedFrame] = []
        for index, time_sec in enumerate(sample_time_points(duration, k)):
            capture.set(cv2.CAP_PROP_POS_MSEC, time_sec * 1000.0)
            ok, image = capture.read()
            if not ok or image is None:
                logger.warning(f"Could not read frame at {time_sec:.2f}s from {path}")
                continue

            encoded, buffer = cv2.imencode(
                ".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(jpeg_quality)]
            )
            if not encoded:
                logger.warning(f"JPEG encoding failed at {time_sec:.2f}s")
                continue

            frames.append(
                ExtractedFrame(index=index, time_sec=time_sec, jpeg=buffer.tobytes())
            )

        logger.debug(
            f"Extracted {len(frames)}/{k} frames from {path} "
            f"(duration={duration:.2f}s)"
        )
        return frames

    except cv2.error as e:
        raise FrameExtractionError(f"OpenCV error while reading {path}: {e}") from e
    finally:
        capture.release()
