"""
Video Crowd Estimator
=====================

Operator-triggered crowd estimation for a recorded video.

State Machine:
    IDLE → FILE_SELECTED → ANALYZING → {COMPLETED | FAILED}

    - FAILED is only reachable from ANALYZING and hands control back to
      FILE_SELECTED with the asset retained, so the operator can retry
    - COMPLETED holds the result until a new asset is selected
    - Selecting a new asset while ANALYZING makes the in-flight analysis
      stale; its eventual result is discarded (last request wins)

Failure Semantics:
    - A frame whose inference fails contributes zero counts
    - If extraction yields no frames, or every frame inference fails,
      the fixed fallback result is returned instead of an error
"""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from crowdguard.models.analysis import CrowdAnalysisResult
from crowdguard.models.video import (
    ZERO_COUNTS,
    ExtractedFrame,
    FrameCounts,
    VideoAsset,
    VideoState,
)
from crowdguard.video.aggregate import aggregate_frame_counts, fallback_result
from crowdguard.video.frames import FrameExtractionError, extract_frames
from crowdguard.video.inference import FrameInference


logger = logging.getLogger(__name__)


FrameExtractor = Callable[[str, int, int], List[ExtractedFrame]]
StateListener = Callable[[VideoState, Optional[VideoAsset]], None]


class InvalidAssetError(ValueError):
    """Raised when the operator selects something that is not a video."""
    pass


class VideoCrowdEstimator:
    """
    Frame-sampling crowd estimator with last-request-wins semantics.

    Attributes:
        inference: Per-frame inference backend
        sample_frames: Number of frames sampled per video (K)
        location: Source tag stamped on results
        state: Current lifecycle state
        asset: Currently selected asset
        result: Latest completed result for the selected asset

    Example:
        estimator = VideoCrowdEstimator(MockFrameInference())
        estimator.select_asset(VideoAsset("/tmp/clip.mp4", "clip.mp4", "video/mp4"))
        result = await estimator.analyze()
    """

    def __init__(
        self,
        inference: FrameInference,
        sample_frames: int = 3,
        jpeg_quality: int = 80,
        frame_timeout_sec: float = 15.0,
        location: str = "VIDEO_ANALYSIS",
        extractor: FrameExtractor = extract_frames,
        on_state_change: Optional[StateListener] = None,
    ) -> None:
        """
        Initialize the estimator.

        Args:
            inference: Per-frame inference backend
            sample_frames: Frames sampled per video
            jpeg_quality: JPEG quality of extracted frames
            frame_timeout_sec: Timeout for one frame inference
            location: Source tag for results
            extractor: Frame extraction function (blocking)
            on_state_change: Called after every state transition
        """
        if sample_frames < 1:
            raise ValueError("sample_frames must be >= 1")

        self.inference = inference
        self.sample_frames = sample_frames
        self.jpeg_quality = jpeg_quality
        self.frame_timeout_sec = frame_timeout_sec
        self.location = location
        self._extractor = extractor
        self.on_state_change = on_state_change

        self._state: VideoState = VideoState.IDLE
        self._asset: Optional[VideoAsset] = None
        self._result: Optional[CrowdAnalysisResult] = None
        self._generation: int = 0

        self.analyses_completed: int = 0
        self.stale_discarded: int = 0
        self.fallback_count: int = 0

        logger.info(
            f"VideoCrowdEstimator initialized: sample_frames={sample_frames}, "
            f"frame_timeout={frame_timeout_sec}s"
        )

    @property
    def state(self) -> VideoState:
        return self._state

    @property
    def asset(self) -> Optional[VideoAsset]:
        return self._asset

    @property
    def result(self) -> Optional[CrowdAnalysisResult]:
        return self._result

    def _set_state(self, state: VideoState) -> None:
        self._state = state
        if self.on_state_change is not None:
            try:
                self.on_state_change(state, self._asset)
            except Exception as e:
                logger.warning(f"Video state listener failed: {e}")

    def select_asset(self, asset: VideoAsset) -> None:
        """
        Select a new video, discarding any previous result.

        Raises:
            InvalidAssetError: If the asset is not a video
        """
        if not asset.is_video:
            raise InvalidAssetError(
                f"{asset.filename} is not a video (content type {asset.content_type!r})"
            )

        if self._state == VideoState.ANALYZING:
            logger.info(
                f"New asset selected during analysis; in-flight result for "
                f"{self._asset.filename if self._asset else '?'} will be discarded"
            )

        self._generation += 1
        self._asset = asset
        self._result = None
        self._set_state(VideoState.FILE_SELECTED)

    async def analyze(self) -> Optional[CrowdAnalysisResult]:
        """
        Analyze the selected asset.

        Returns:
            The result, or None if nothing is selected, the analysis failed,
            or a newer asset was selected before it finished.
        """
        if self._asset is None:
            logger.warning("Analyze requested with no video selected")
            return None

        generation = self._generation
        asset = self._asset
        self._set_state(VideoState.ANALYZING)
        logger.info(f"Starting video analysis: {asset.filename}")

        try:
            result = await self.estimate(asset)
        except Exception as e:
            logger.error(f"Video analysis failed for {asset.filename}: {e}")
            if generation == self._generation:
                self._set_state(VideoState.FAILED)
                self._set_state(VideoState.FILE_SELECTED)
            return None

        if generation != self._generation:
            self.stale_discarded += 1
            logger.info(f"Discarding stale analysis result for {asset.filename}")
            return None

        self._result = result
        self.analyses_completed += 1
        self._set_state(VideoState.COMPLETED)
        logger.info(
            f"Analysis complete: {result.total_people} people "
            f"({result.category.value}), boys={result.gender_breakdown.boys}, "
            f"girls={result.gender_breakdown.girls}"
        )
        return result

    async def estimate(self, asset: VideoAsset) -> CrowdAnalysisResult:
        """
        Run extraction, inference and aggregation for one asset.

        Never raises for extraction or inference failures; those degrade to
        the fallback result.
        """
        try:
            frames = await asyncio.to_thread(
                self._extractor, asset.path, self.sample_frames, self.jpeg_quality
            )
        except FrameExtractionError as e:
            logger.warning(f"Frame extraction failed, using fallback: {e}")
            return self._fallback()

        if not frames:
            logger.warning(f"No frames extracted from {asset.filename}, using fallback")
            return self._fallback()

        outcomes = await asyncio.gather(*(self._infer_frame(f) for f in frames))
        if not any(ok for _, ok in outcomes):
            logger.warning("Inference failed for every frame, using fallback")
            return self._fallback()

        return aggregate_frame_counts(
            [counts for counts, _ in outcomes],
            location=self.location,
        )

    async def _infer_frame(self, frame: ExtractedFrame) -> Tuple[FrameCounts, bool]:
        try:
            counts = await asyncio.wait_for(
                self.inference.infer(frame),
                timeout=self.frame_timeout_sec,
            )
            return counts, True
        except asyncio.TimeoutError:
            logger.warning(f"Frame {frame.index} inference timed out")
        except Exception as e:
            logger.warning(f"Frame {frame.index} inference failed: {e}")
        return ZERO_COUNTS, False

    def _fallback(self) -> CrowdAnalysisResult:
        self.fallback_count += 1
        return fallback_result(location=self.location)

    def get_status(self) -> dict:
        """Current state, selected asset and result for the presentation layer."""
        return {
            "state": self._state.value,
            "file_name": self._asset.filename if self._asset else None,
            "result": self._result.model_dump(mode="json") if self._result else None,
        }
