"""
Video Estimation Tests
======================

Tests for frame aggregation, frame extraction, per-frame inference and the
estimator state machine.
"""

import asyncio
import json

import cv2
import httpx
import numpy as np
import pytest

from crowdguard.analysis import GeminiClient
from crowdguard.models.analysis import CrowdCategory
from crowdguard.models.video import ExtractedFrame, FrameCounts, VideoAsset, VideoState
from crowdguard.video import (
    FrameExtractionError,
    GeminiFrameInference,
    InferenceError,
    InvalidAssetError,
    MockFrameInference,
    VideoCrowdEstimator,
    aggregate_frame_counts,
    extract_frames,
    fallback_result,
    sample_time_points,
    split_counts,
)


def counts(people, a, b) -> FrameCounts:
    return FrameCounts(people_count=people, subgroup_a=a, subgroup_b=b)


def asset(name="clip.mp4", content_type="video/mp4") -> VideoAsset:
    return VideoAsset(path=f"/videos/{name}", filename=name, content_type=content_type)


def fake_extractor(path, k, quality):
    """Three frames whose bytes carry the asset path."""
    return [ExtractedFrame(index=i, time_sec=float(i + 1), jpeg=path.encode()) for i in range(k)]


class ScriptedInference:
    """Returns scripted counts by frame index; exceptions are raised."""

    def __init__(self, script):
        self.script = script
        self.calls = 0

    async def infer(self, frame):
        self.calls += 1
        outcome = self.script[frame.index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


WORKED_EXAMPLE = [counts(10, 4, 6), counts(15, 7, 8), counts(8, 3, 5)]


class TestAggregation:
    """Tests for aggregate_frame_counts."""

    def test_worked_example(self):
        """Verify max total, proportional split and category."""
        result = aggregate_frame_counts(WORKED_EXAMPLE, location="VIDEO_ANALYSIS")

        assert result.total_people == 15
        assert result.gender_breakdown.boys == 7
        assert result.gender_breakdown.girls == 8
        assert result.category == CrowdCategory.AVERAGE
        assert result.location == "VIDEO_ANALYSIS"

    def test_order_independent(self):
        forward = aggregate_frame_counts(WORKED_EXAMPLE, timestamp=1.0)
        backward = aggregate_frame_counts(list(reversed(WORKED_EXAMPLE)), timestamp=1.0)
        assert forward == backward

    def test_failed_frames_contribute_zero(self):
        result = aggregate_frame_counts([counts(10, 4, 6), counts(0, 0, 0), counts(8, 3, 5)])
        assert result.total_people == 10
        assert (result.gender_breakdown.boys, result.gender_breakdown.girls) == (3, 7)

    def test_means_above_max_raise_total(self):
        """Verify total grows to the mean group sum when that is larger."""
        result = aggregate_frame_counts([counts(4, 5, 5), counts(4, 5, 5)])
        assert result.total_people == 10
        assert result.gender_breakdown.boys + result.gender_breakdown.girls == 10

    def test_zero_groups_split_evenly(self):
        result = aggregate_frame_counts([counts(7, 0, 0)])
        assert (result.gender_breakdown.boys, result.gender_breakdown.girls) == (4, 3)

    def test_all_zero(self):
        result = aggregate_frame_counts([counts(0, 0, 0)] * 3)
        assert result.total_people == 0
        assert result.category == CrowdCategory.GOOD

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            aggregate_frame_counts([])

    @pytest.mark.parametrize("total,expected", [
        (0, CrowdCategory.GOOD),
        (4, CrowdCategory.GOOD),
        (5, CrowdCategory.GOOD),
        (6, CrowdCategory.AVERAGE),
        (25, CrowdCategory.AVERAGE),
        (26, CrowdCategory.HIGH),
    ])
    def test_category_boundaries(self, total, expected):
        half = total // 2
        result = aggregate_frame_counts([counts(total, half, total - half)])
        assert result.total_people == total
        assert result.category == expected

    def test_split_counts(self):
        assert split_counts(15, 5, 6) == (7, 8)
        assert split_counts(11, 5, 6) == (5, 6)
        assert split_counts(3, 0, 4) == (0, 3)

    def test_fallback_result(self):
        result = fallback_result(location="VIDEO_ANALYSIS")
        assert result.total_people == 13
        assert result.category == CrowdCategory.AVERAGE
        assert (result.gender_breakdown.boys, result.gender_breakdown.girls) == (6, 7)


class TestFrameExtraction:
    """Tests for OpenCV frame extraction."""

    def test_time_points_are_interior(self):
        assert sample_time_points(8.0, 3) == [2.0, 4.0, 6.0]
        assert sample_time_points(0.0, 3) == []
        assert sample_time_points(5.0, 0) == []

    def test_extracts_jpeg_frames(self, tmp_path):
        """Verify frames come back JPEG-encoded and in time order."""
        path = tmp_path / "clip.avi"
        writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
        for i in range(40):
            writer.write(np.full((48, 64, 3), (i * 6) % 255, dtype=np.uint8))
        writer.release()

        frames = extract_frames(str(path), k=3, jpeg_quality=80)

        assert 0 < len(frames) <= 3
        assert all(f.jpeg[:2] == b"\xff\xd8" for f in frames)
        times = [f.time_sec for f in frames]
        assert times == sorted(times)

    def test_unreadable_file_raises(self, tmp_path):
        path = tmp_path / "notes.mp4"
        path.write_bytes(b"this is not a video")
        with pytest.raises(FrameExtractionError):
            extract_frames(str(path))

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FrameExtractionError):
            extract_frames(str(tmp_path / "missing.mp4"))


class TestFrameInference:
    """Tests for the inference backends."""

    @pytest.mark.asyncio
    async def test_mock_inference_is_deterministic(self):
        inference = MockFrameInference()
        frames = fake_extractor("/videos/a.mp4", 3, 80)
        results = [await inference.infer(f) for f in frames]

        assert [r.people_count for r in results] == [15, 12, 9]
        assert all(r.subgroup_a + r.subgroup_b == r.people_count for r in results)

    @pytest.mark.asyncio
    async def test_gemini_inference(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            text = json.dumps({"people": 11, "boys": 5, "girls": 6})
            return httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]}
            )

        client = GeminiClient("test-key", transport=httpx.MockTransport(handler))
        frame = ExtractedFrame(index=0, time_sec=1.0, jpeg=b"\xff\xd8jpeg")
        result = await GeminiFrameInference(client).infer(frame)

        assert result == counts(11, 5, 6)
        parts = seen["body"]["contents"][0]["parts"]
        assert parts[1]["inlineData"]["mimeType"] == "image/jpeg"

    @pytest.mark.asyncio
    async def test_gemini_inference_rejects_bad_counts(self):
        def handler(request):
            text = json.dumps({"people": "many", "boys": 1, "girls": 1})
            return httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]}
            )

        client = GeminiClient("test-key", transport=httpx.MockTransport(handler))
        frame = ExtractedFrame(index=0, time_sec=1.0, jpeg=b"\xff\xd8")
        with pytest.raises(InferenceError):
            await GeminiFrameInference(client).infer(frame)


class TestVideoCrowdEstimator:
    """Tests for VideoCrowdEstimator."""

    def _estimator(self, inference, extractor=fake_extractor, **kwargs):
        states = []
        estimator = VideoCrowdEstimator(
            inference,
            extractor=extractor,
            on_state_change=lambda state, selected: states.append(state),
            **kwargs,
        )
        return estimator, states

    def test_rejects_non_video(self):
        estimator, states = self._estimator(MockFrameInference())
        with pytest.raises(InvalidAssetError):
            estimator.select_asset(asset("photo.jpg", "image/jpeg"))
        assert estimator.state == VideoState.IDLE
        assert states == []

    @pytest.mark.asyncio
    async def test_analyze_without_selection(self):
        estimator, _ = self._estimator(MockFrameInference())
        assert await estimator.analyze() is None
        assert estimator.state == VideoState.IDLE

    @pytest.mark.asyncio
    async def test_happy_path_states(self):
        inference = ScriptedInference(WORKED_EXAMPLE)
        estimator, states = self._estimator(inference)
        estimator.select_asset(asset())

        result = await estimator.analyze()

        assert result.total_people == 15
        assert estimator.result == result
        assert states == [VideoState.FILE_SELECTED, VideoState.ANALYZING, VideoState.COMPLETED]
        assert inference.calls == 3
        assert estimator.get_status()["state"] == "COMPLETED"

    @pytest.mark.asyncio
    async def test_partial_failure_counts_as_zero(self):
        inference = ScriptedInference([counts(10, 4, 6), InferenceError("bad frame"), counts(8, 3, 5)])
        estimator, _ = self._estimator(inference)
        estimator.select_asset(asset())

        result = await estimator.analyze()

        assert result.total_people == 10
        assert estimator.fallback_count == 0

    @pytest.mark.asyncio
    async def test_all_frames_failing_uses_fallback(self):
        inference = ScriptedInference([InferenceError("x")] * 3)
        estimator, _ = self._estimator(inference)
        estimator.select_asset(asset())

        result = await estimator.analyze()

        assert result.total_people == 13
        assert estimator.fallback_count == 1
        assert estimator.state == VideoState.COMPLETED

    @pytest.mark.asyncio
    async def test_frame_timeout_counts_as_failure(self):
        class Hanging:
            async def infer(self, frame):
                await asyncio.sleep(5)

        estimator, _ = self._estimator(Hanging(), frame_timeout_sec=0.05)
        estimator.select_asset(asset())
        result = await asyncio.wait_for(estimator.analyze(), timeout=2.0)
        assert result.total_people == 13

    @pytest.mark.asyncio
    async def test_no_frames_uses_fallback(self):
        estimator, _ = self._estimator(MockFrameInference(), extractor=lambda p, k, q: [])
        estimator.select_asset(asset())
        result = await estimator.analyze()
        assert result.total_people == 13

    @pytest.mark.asyncio
    async def test_extraction_error_uses_fallback(self):
        def broken(path, k, quality):
            raise FrameExtractionError("cannot open")

        estimator, _ = self._estimator(MockFrameInference(), extractor=broken)
        estimator.select_asset(asset())
        result = await estimator.analyze()
        assert result.total_people == 13
        assert estimator.fallback_count == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_then_retains_asset(self):
        """Verify FAILED hands control back to FILE_SELECTED."""
        def explode(path, k, quality):
            raise RuntimeError("disk vanished")

        estimator, states = self._estimator(MockFrameInference(), extractor=explode)
        selected = asset()
        estimator.select_asset(selected)

        assert await estimator.analyze() is None
        assert states == [
            VideoState.FILE_SELECTED,
            VideoState.ANALYZING,
            VideoState.FAILED,
            VideoState.FILE_SELECTED,
        ]
        assert estimator.asset == selected
        assert estimator.result is None

    @pytest.mark.asyncio
    async def test_last_request_wins(self):
        """Verify a superseded analysis never overwrites the newer selection."""
        started = asyncio.Event()
        gate = asyncio.Event()

        class GatedInference:
            async def infer(self, frame):
                if frame.jpeg == b"/videos/first.mp4":
                    started.set()
                    await gate.wait()
                    return counts(40, 20, 20)
                return counts(10, 4, 6)

        estimator, _ = self._estimator(GatedInference())
        estimator.select_asset(asset("first.mp4"))
        first = asyncio.create_task(estimator.analyze())
        await asyncio.wait_for(started.wait(), timeout=2.0)

        estimator.select_asset(asset("second.mp4"))
        assert estimator.state == VideoState.FILE_SELECTED
        gate.set()

        assert await first is None
        assert estimator.result is None
        assert estimator.stale_discarded == 1
        assert estimator.state == VideoState.FILE_SELECTED

        second = await estimator.analyze()
        assert second.total_people == 10
        assert estimator.asset.filename == "second.mp4"
        assert estimator.state == VideoState.COMPLETED

    @pytest.mark.asyncio
    async def test_new_selection_clears_result(self):
        estimator, _ = self._estimator(ScriptedInference(WORKED_EXAMPLE))
        estimator.select_asset(asset())
        await estimator.analyze()

        estimator.select_asset(asset("other.mp4"))
        assert estimator.result is None
        assert estimator.get_status() == {
            "state": "FILE_SELECTED",
            "file_name": "other.mp4",
            "result": None,
        }
