"""
Risk Scoring
============

Contract and implementations of the external risk-scoring capability.

Request:
    recent metric samples (<= 5) and recent alert messages (<= 3)

Response:
    {severity, prediction, recommendations}

This module also holds the fixed analyses used before the first cycle and
whenever the scoring capability cannot be used.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import List, Protocol, Tuple

from pydantic import ValidationError

from crowdguard.analysis.gemini import GeminiClient, GeminiError, text_part
from crowdguard.models.alert import AlertSeverity
from crowdguard.models.analysis import RiskAnalysis
from crowdguard.models.metric import CrowdMetric


logger = logging.getLogger(__name__)


INITIAL_ANALYSIS = RiskAnalysis(
    severity=AlertSeverity.LOW,
    prediction="System initializing. Monitoring crowd baseline...",
    recommendations=[
        "Ensure all camera feeds are active.",
        "Verify personnel station assignments.",
    ],
)

FALLBACK_ANALYSIS = RiskAnalysis(
    severity=AlertSeverity.LOW,
    prediction="Unable to process real-time AI prediction. Relying on manual thresholds.",
    recommendations=[
        "Ensure all exit routes are clear.",
        "Deploy additional personnel to bottlenecks.",
    ],
)

OFFLINE_ANALYSIS = RiskAnalysis(
    severity=AlertSeverity.LOW,
    prediction="System operating in offline mode. Manual monitoring active.",
    recommendations=[
        "Monitor crowd density manually.",
        "Ensure emergency protocols are ready.",
    ],
)


class RiskScoringError(Exception):
    """Raised when the scoring capability fails or answers malformed data."""
    pass


@dataclass(frozen=True)
class RiskRequest:
    """
    Input of one scoring call.

    Attributes:
        metrics: Most recent samples, oldest first
        alert_messages: Messages of the most recent alerts, newest first
    """

    metrics: Tuple[CrowdMetric, ...]
    alert_messages: List[str] = field(default_factory=list)

    def to_payload(self) -> dict:
        """JSON-serializable request body."""
        return {
            "metrics": [m.model_dump(mode="json") for m in self.metrics],
            "activeAlerts": list(self.alert_messages),
        }


class RiskScorer(Protocol):
    """
    Protocol for risk-scoring backends.

    Implementations raise on any failure; the orchestrator owns fallback.
    """

    async def score(self, request: RiskRequest) -> RiskAnalysis:
        ...


RISK_RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "severity": {
            "type": "STRING",
            "enum": [s.value for s in AlertSeverity],
            "description": "The overall risk level calculated from metrics.",
        },
        "prediction": {
            "type": "STRING",
            "description": "Short summary of the predicted situation in the next 15-30 minutes.",
        },
        "recommendations": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
            "description": "List of actionable steps for security personnel.",
        },
    },
    "required": ["severity", "prediction", "recommendations"],
}


def build_prompt(request: RiskRequest, venue: str = "major temple gathering") -> str:
    payload = request.to_payload()
    return (
        f"Analyze the following crowd metrics and active alerts for a {venue}. "
        "Predict stampede risks and provide specific security recommendations.\n\n"
        f"Metrics: {json.dumps(payload['metrics'])}\n"
        f"Active Alerts: {json.dumps(payload['activeAlerts'])}\n\n"
        "Focus on identifying bottlenecks and dangerous density thresholds "
        "(>4 people/sqm)."
    )


class GeminiRiskScorer:
    """
    Risk scorer backed by Gemini structured output.

    Attributes:
        client: Gemini REST client
        venue: Venue description used in the prompt
    """

    def __init__(self, client: GeminiClient, venue: str = "major temple gathering") -> None:
        self.client = client
        self.venue = venue

    async def score(self, request: RiskRequest) -> RiskAnalysis:
        """
        Score one request.

        Raises:
            RiskScoringError: On transport failure or malformed response
        """
        try:
            data = await self.client.generate_json(
                [text_part(build_prompt(request, self.venue))],
                RISK_RESPONSE_SCHEMA,
            )
        except GeminiError as e:
            raise RiskScoringError(str(e)) from e

        try:
            return RiskAnalysis.model_validate(data)
        except ValidationError as e:
            raise RiskScoringError(
                f"Malformed risk analysis: {e.error_count()} validation error(s)"
            ) from e
