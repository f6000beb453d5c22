"""
Activity Event Model
====================

Discrete events forwarded to the activity log.

Every metric emission, alert, risk analysis, system event and operator
action becomes one ActivityEvent. The core records them fire-and-forget.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from crowdguard.models.alert import AlertSeverity


class ActivityKind(str, Enum):
    """Kinds of activity events."""

    METRIC = "METRIC"
    ALERT = "ALERT"
    ANALYSIS = "ANALYSIS"
    SYSTEM = "SYSTEM"
    USER_ACTION = "USER_ACTION"


class ActivityEvent(BaseModel):
    """One activity log entry."""

    id: str = Field(..., description="Unique event identifier")
    timestamp: float = Field(..., gt=0, description="UNIX timestamp")
    kind: ActivityKind = Field(..., description="Event kind")
    data: Dict[str, Any] = Field(default_factory=dict, description="Payload")
    location: Optional[str] = Field(default=None, description="Site label")
    severity: Optional[AlertSeverity] = Field(default=None, description="Severity")
