"""
Alert Models
============

Severity levels, alert categories and the Alert record.

Severity is shared by alerts and risk analyses and is ordered:
    LOW < MEDIUM < HIGH < CRITICAL
"""

from enum import Enum

from pydantic import BaseModel, Field


class AlertSeverity(str, Enum):
    """
    Ordered risk level.

    Attributes:
        LOW: Conditions nominal
        MEDIUM: Elevated, monitor closely
        HIGH: Dangerous trend, act soon
        CRITICAL: Immediate intervention required
    """

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        """Position in the severity ordering (LOW=0)."""
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [
    AlertSeverity.LOW,
    AlertSeverity.MEDIUM,
    AlertSeverity.HIGH,
    AlertSeverity.CRITICAL,
]


class AlertCategory(str, Enum):
    """Machine-readable alert cause."""

    BOTTLENECK = "BOTTLENECK"
    HIGH_DENSITY = "HIGH_DENSITY"
    REVERSE_FLOW = "REVERSE_FLOW"
    ABNORMAL_SPEED = "ABNORMAL_SPEED"


class Alert(BaseModel):
    """
    An operator-facing alert.

    Created by the AlertEvaluator and removed only when an operator
    acknowledges it.
    """

    id: str = Field(..., min_length=1, description="Unique alert identifier")
    timestamp: float = Field(..., gt=0, description="UNIX creation timestamp")
    location: str = Field(..., description="Human-readable location label")
    severity: AlertSeverity = Field(..., description="Alert severity")
    message: str = Field(..., description="Free-text description")
    category: AlertCategory = Field(..., description="Alert category tag")

    class Config:
        """Pydantic model configuration."""

        frozen = True
