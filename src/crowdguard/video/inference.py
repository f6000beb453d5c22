"""
Per-Frame Inference
===================

Contract and implementations of the per-frame person/gender inference
capability.

Request:  one JPEG still frame
Response: {people_count, subgroup_a, subgroup_b}

Components:
    - FrameInference: Protocol for inference backends
    - GeminiFrameInference: Gemini structured output (production)
    - MockFrameInference: Deterministic counts for local runs and tests
"""

import logging
import math
from typing import Any, Protocol

from crowdguard.analysis.gemini import GeminiClient, GeminiError, jpeg_part, text_part
from crowdguard.models.video import ExtractedFrame, FrameCounts


logger = logging.getLogger(__name__)


class InferenceError(Exception):
    """Raised when a frame cannot be analyzed."""
    pass


class FrameInference(Protocol):
    """
    Protocol for per-frame inference backends.

    Implementations raise on failure; the estimator turns a failed frame
    into a zeroed contribution.
    """

    async def infer(self, frame: ExtractedFrame) -> FrameCounts:
        ...


FRAME_PROMPT = """Count the number of people in this image and provide gender breakdown. Focus on:
1. Total distinct people visible
2. Number of males/boys
3. Number of females/girls

Be precise in your counting. Only count clearly visible individuals."""

FRAME_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "people": {"type": "NUMBER", "description": "Total number of people"},
        "boys": {"type": "NUMBER", "description": "Number of boys/men"},
        "girls": {"type": "NUMBER", "description": "Number of girls/women"},
    },
    "required": ["people", "boys", "girls"],
}


def _count(value: Any, name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InferenceError(f"{name} is not a number: {value!r}")
    if math.isnan(value) or value < 0:
        raise InferenceError(f"{name} must be a non-negative number, got {value}")
    return int(math.floor(value + 0.5))


class GeminiFrameInference:
    """Per-frame people and gender counting with Gemini."""

    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    async def infer(self, frame: ExtractedFrame) -> FrameCounts:
        """
        Count people in one frame.

        Raises:
            InferenceError: On transport failure or malformed response
        """
        try:
            data = await self.client.generate_json(
                [text_part(FRAME_PROMPT), jpeg_part(frame.jpeg)],
                FRAME_RESPONSE_SCHEMA,
            )
        except GeminiError as e:
            raise InferenceError(str(e)) from e

        return FrameCounts(
            people_count=_count(data.get("people"), "people"),
            subgroup_a=_count(data.get("boys"), "boys"),
            subgroup_b=_count(data.get("girls"), "girls"),
        )


class MockFrameInference:
    """
    Deterministic mock inference.

    Counts vary smoothly with the frame index:
        - Base count around configured value
        - Sinusoidal variation over frame positions
        - Fixed share of the first group

    Attributes:
        base_count: Base number of people
        variation_amplitude: Max variation from base count
        variation_period: Frame positions per full cycle
        subgroup_a_share: Share of people counted in the first group
    """

    def __init__(
        self,
        base_count: int = 12,
        variation_amplitude: float = 3.0,
        variation_period: int = 4,
        subgroup_a_share: float = 0.5,
    ) -> None:
        self.base_count = base_count
        self.variation_amplitude = variation_amplitude
        self.variation_period = max(1, variation_period)
        self.subgroup_a_share = subgroup_a_share

        logger.info(
            f"MockFrameInference initialized: base_count={base_count}, "
            f"amplitude={variation_amplitude}"
        )

    async def infer(self, frame: ExtractedFrame) -> FrameCounts:
        phase = (2 * math.pi * (frame.index + 1)) / self.variation_period
        raw = self.base_count + self.variation_amplitude * math.sin(phase)
        people = max(0, int(round(raw)))
        subgroup_a = int(round(people * self.subgroup_a_share))
        return FrameCounts(
            people_count=people,
            subgroup_a=subgroup_a,
            subgroup_b=people - subgroup_a,
        )
