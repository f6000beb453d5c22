"""
Crowd Metric Model
==================

A single crowd observation for a monitored site.

Produced by a MetricSource (synthetic generator or camera-analytics feed),
consumed by the MetricWindow and the AlertEvaluator.

Example:
    from crowdguard.models.metric import CrowdMetric

    metric = CrowdMetric(
        location="MAIN_GATE",
        density=4.2,
        flow_rate=72,
        velocity=1.3,
        anomaly_score=18.5,
        timestamp=1770500938.284,
    )
"""

from pydantic import BaseModel, Field


class CrowdMetric(BaseModel):
    """
    One immutable crowd observation.

    Attributes:
        location: Site identifier the sample was captured at
        density: People per square meter
        flow_rate: People per minute crossing the monitored line
        velocity: Average walking speed (m/s)
        anomaly_score: Analytics anomaly score in [0, 100]
        timestamp: UNIX capture timestamp
    """

    location: str = Field(..., min_length=1, description="Site identifier")

    density: float = Field(
        ...,
        ge=0.0,
        description="People per square meter",
    )

    flow_rate: int = Field(
        ...,
        ge=0,
        description="People per minute",
    )

    velocity: float = Field(
        ...,
        description="Average speed in m/s",
    )

    anomaly_score: float = Field(
        ...,
        ge=0.0,
        le=100.0,
        description="Anomaly score (0-100)",
    )

    timestamp: float = Field(
        ...,
        gt=0,
        description="UNIX capture timestamp",
    )

    class Config:
        """Pydantic model configuration."""

        frozen = True
        json_schema_extra = {
            "example": {
                "location": "MAIN_GATE",
                "density": 4.2,
                "flow_rate": 72,
                "velocity": 1.3,
                "anomaly_score": 18.5,
                "timestamp": 1770500938.284,
            }
        }
