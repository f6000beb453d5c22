"""
Analysis Models
===============

Outputs of the two analysis pipelines:

    - RiskAnalysis: narrative risk assessment from the risk-scoring service,
      replaced wholesale on every analysis cycle
    - CrowdAnalysisResult: head-count estimate for one uploaded video

Category Bands (CrowdAnalysisResult):
    GOOD     total_people <= 5 (bands start at 4; smaller counts default here)
    AVERAGE  5 < total_people <= 25
    HIGH     total_people > 25
"""

import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from crowdguard.models.alert import AlertSeverity


class RiskAnalysis(BaseModel):
    """
    Risk assessment for the current crowd situation.

    Attributes:
        severity: Overall risk level
        prediction: Short summary of the predicted situation
        recommendations: Ordered, actionable steps for security staff
    """

    severity: AlertSeverity = Field(..., description="Overall risk level")
    prediction: str = Field(..., description="Predicted situation summary")
    recommendations: List[str] = Field(
        ...,
        description="Ordered list of recommendations",
    )

    class Config:
        """Pydantic model configuration."""

        frozen = True


class CrowdCategory(str, Enum):
    """Crowd size band for a video estimate."""

    GOOD = "GOOD"
    AVERAGE = "AVERAGE"
    HIGH = "HIGH"


GOOD_MAX_PEOPLE = 5
AVERAGE_MAX_PEOPLE = 25


def classify_crowd(total_people: int) -> CrowdCategory:
    """
    Map a head count to its category band.

    Counts below the GOOD band (0-3) are classified GOOD.
    """
    if total_people <= GOOD_MAX_PEOPLE:
        return CrowdCategory.GOOD
    if total_people <= AVERAGE_MAX_PEOPLE:
        return CrowdCategory.AVERAGE
    return CrowdCategory.HIGH


class GenderBreakdown(BaseModel):
    """Split of the head count into two groups."""

    boys: int = Field(..., ge=0, description="Count of the first group")
    girls: int = Field(..., ge=0, description="Count of the second group")

    class Config:
        """Pydantic model configuration."""

        frozen = True


class CrowdAnalysisResult(BaseModel):
    """
    Crowd estimate for one video analysis.

    The gender breakdown always sums to total_people and the category is
    always classify_crowd(total_people); both are checked on construction.
    Use from_counts() to build a result with the category derived.
    """

    total_people: int = Field(..., ge=0, description="Estimated head count")
    category: CrowdCategory = Field(..., description="Crowd size band")
    gender_breakdown: GenderBreakdown = Field(..., description="Group split")
    timestamp: float = Field(..., gt=0, description="UNIX timestamp")
    location: Optional[str] = Field(default=None, description="Source tag")

    class Config:
        """Pydantic model configuration."""

        frozen = True

    @model_validator(mode="after")
    def _check_consistency(self) -> "CrowdAnalysisResult":
        split = self.gender_breakdown
        if split.boys + split.girls != self.total_people:
            raise ValueError(
                f"gender breakdown {split.boys}+{split.girls} does not sum "
                f"to total_people={self.total_people}"
            )
        expected = classify_crowd(self.total_people)
        if self.category != expected:
            raise ValueError(
                f"category {self.category.value} does not match "
                f"total_people={self.total_people} (expected {expected.value})"
            )
        return self

    @classmethod
    def from_counts(
        cls,
        total_people: int,
        boys: int,
        girls: int,
        location: Optional[str] = None,
        timestamp: Optional[float] = None,
    ) -> "CrowdAnalysisResult":
        """Build a result, deriving the category from the head count."""
        return cls(
            total_people=total_people,
            category=classify_crowd(total_people),
            gender_breakdown=GenderBreakdown(boys=boys, girls=girls),
            timestamp=timestamp if timestamp is not None else time.time(),
            location=location,
        )
