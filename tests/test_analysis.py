"""
Risk Analysis Tests
===================

Tests for the analysis orchestrator and the Gemini-backed scorer.
"""

import asyncio
import json

import httpx
import pytest

from conftest import make_alert, make_metric
from crowdguard.analysis import (
    FALLBACK_ANALYSIS,
    INITIAL_ANALYSIS,
    OFFLINE_ANALYSIS,
    GeminiClient,
    GeminiError,
    GeminiRiskScorer,
    RiskAnalysisOrchestrator,
    RiskScoringError,
)
from crowdguard.analysis.orchestrator import (
    OUTCOME_FAILED,
    OUTCOME_OFFLINE,
    OUTCOME_SCORED,
)
from crowdguard.models.alert import AlertSeverity
from crowdguard.models.analysis import RiskAnalysis


SCORED = RiskAnalysis(
    severity=AlertSeverity.CRITICAL,
    prediction="Crush risk at the east corridor within 15 minutes.",
    recommendations=["Close gate 3.", "Open overflow lane B.", "Announce holding pattern."],
)


class RecordingScorer:
    """Scorer returning a fixed analysis and recording requests."""

    def __init__(self, analysis=SCORED):
        self.analysis = analysis
        self.requests = []

    async def score(self, request):
        self.requests.append(request)
        return self.analysis


class FailingScorer:
    async def score(self, request):
        raise RiskScoringError("service unavailable")


class SlowScorer:
    async def score(self, request):
        await asyncio.sleep(5)
        return SCORED


class WrongTypeScorer:
    async def score(self, request):
        return {"severity": "HIGH"}


def gemini_response(payload) -> dict:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def gemini_client(handler) -> GeminiClient:
    return GeminiClient(
        api_key="test-key",
        base_url="https://gemini.test/v1beta",
        transport=httpx.MockTransport(handler),
    )


class TestRiskAnalysisOrchestrator:
    """Tests for RiskAnalysisOrchestrator."""

    def _fill(self, window, n=7):
        for i in range(n):
            window.append(make_metric(density=4.0 + i * 0.1))

    def test_initial_analysis(self, window, board):
        orchestrator = RiskAnalysisOrchestrator(window, board, scorer=RecordingScorer())
        assert orchestrator.current == INITIAL_ANALYSIS
        assert orchestrator.current.prediction == "System initializing. Monitoring crowd baseline..."

    @pytest.mark.asyncio
    async def test_empty_window_is_noop(self, window, board):
        """Verify no request is sent and the analysis is unchanged."""
        scorer = RecordingScorer()
        orchestrator = RiskAnalysisOrchestrator(window, board, scorer=scorer)

        assert await orchestrator.run_cycle() is None
        assert scorer.requests == []
        assert orchestrator.current == INITIAL_ANALYSIS
        assert orchestrator.cycles_run == 0

    @pytest.mark.asyncio
    async def test_success_adopted_verbatim(self, window, board):
        """Verify a valid response becomes the current analysis unchanged."""
        self._fill(window)
        for i in range(4):
            board.push(make_alert(f"A-{i}", message=f"msg {i}"))
        scorer = RecordingScorer()
        orchestrator = RiskAnalysisOrchestrator(window, board, scorer=scorer)

        cycle = await orchestrator.run_cycle()

        assert cycle.outcome == OUTCOME_SCORED
        assert cycle.degraded is False
        assert orchestrator.current == SCORED
        request = scorer.requests[0]
        assert request.metrics == window.snapshot(5)
        assert request.alert_messages == ["msg 3", "msg 2", "msg 1"]

    @pytest.mark.asyncio
    async def test_failure_uses_fallback(self, window, board):
        self._fill(window)
        orchestrator = RiskAnalysisOrchestrator(window, board, scorer=FailingScorer())

        cycle = await orchestrator.run_cycle()

        assert cycle.outcome == OUTCOME_FAILED
        assert "service unavailable" in cycle.error
        assert orchestrator.current == FALLBACK_ANALYSIS
        assert orchestrator.current.severity == AlertSeverity.LOW
        assert orchestrator.failure_count == 1

    @pytest.mark.asyncio
    async def test_timeout_uses_fallback(self, window, board):
        """Verify a hung scorer is bounded by the timeout."""
        self._fill(window)
        orchestrator = RiskAnalysisOrchestrator(
            window, board, scorer=SlowScorer(), timeout_sec=0.05
        )

        cycle = await asyncio.wait_for(orchestrator.run_cycle(), timeout=2.0)

        assert cycle.outcome == OUTCOME_FAILED
        assert "timed out" in cycle.error
        assert orchestrator.current == FALLBACK_ANALYSIS

    @pytest.mark.asyncio
    async def test_malformed_result_uses_fallback(self, window, board):
        self._fill(window)
        orchestrator = RiskAnalysisOrchestrator(window, board, scorer=WrongTypeScorer())
        cycle = await orchestrator.run_cycle()
        assert cycle.outcome == OUTCOME_FAILED
        assert orchestrator.current == FALLBACK_ANALYSIS

    @pytest.mark.asyncio
    async def test_offline_mode_never_calls_scorer(self, window, board):
        self._fill(window)
        scorer = RecordingScorer()
        orchestrator = RiskAnalysisOrchestrator(window, board, scorer=scorer, offline_mode=True)

        cycle = await orchestrator.run_cycle()

        assert cycle.outcome == OUTCOME_OFFLINE
        assert cycle.degraded is True
        assert scorer.requests == []
        assert orchestrator.current == OFFLINE_ANALYSIS

    @pytest.mark.asyncio
    async def test_recovers_after_failure(self, window, board):
        self._fill(window)
        scorer = RecordingScorer()
        orchestrator = RiskAnalysisOrchestrator(window, board, scorer=FailingScorer())
        await orchestrator.run_cycle()

        orchestrator.scorer = scorer
        await orchestrator.run_cycle()

        assert orchestrator.current == SCORED
        assert orchestrator.get_metrics()["cycles_run"] == 2


class TestGeminiRiskScorer:
    """Tests for GeminiRiskScorer over a mocked HTTP transport."""

    @pytest.mark.asyncio
    async def test_success(self, window, board):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=gemini_response(SCORED.model_dump(mode="json")))

        window.append(make_metric(density=5.3))
        orchestrator = RiskAnalysisOrchestrator(
            window, board, scorer=GeminiRiskScorer(gemini_client(handler))
        )
        cycle = await orchestrator.run_cycle()

        assert cycle.outcome == OUTCOME_SCORED
        assert orchestrator.current == SCORED
        assert seen["url"].endswith("/models/gemini-2.0-flash:generateContent")
        assert seen["key"] == "test-key"
        prompt = seen["body"]["contents"][0]["parts"][0]["text"]
        assert "Predict stampede risks" in prompt
        assert seen["body"]["generationConfig"]["responseMimeType"] == "application/json"

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        client = gemini_client(lambda request: httpx.Response(503, json={"error": "down"}))
        scorer = GeminiRiskScorer(client)
        with pytest.raises(RiskScoringError):
            await scorer.score(_request())
        assert client.error_count == 1

    @pytest.mark.asyncio
    async def test_malformed_payload_raises(self):
        bad = {"severity": "EXTREME", "prediction": "x", "recommendations": []}
        client = gemini_client(lambda request: httpx.Response(200, json=gemini_response(bad)))
        with pytest.raises(RiskScoringError):
            await GeminiRiskScorer(client).score(_request())

    @pytest.mark.asyncio
    async def test_missing_recommendations_uses_fallback(self, window, board):
        """Verify a response without a recommendation list is not adopted."""
        partial = {"severity": "HIGH", "prediction": "crush risk"}
        client = gemini_client(lambda request: httpx.Response(200, json=gemini_response(partial)))

        window.append(make_metric(density=5.3))
        orchestrator = RiskAnalysisOrchestrator(
            window, board, scorer=GeminiRiskScorer(client)
        )
        cycle = await orchestrator.run_cycle()

        assert cycle.outcome == OUTCOME_FAILED
        assert orchestrator.current == FALLBACK_ANALYSIS

    @pytest.mark.asyncio
    async def test_non_json_text_raises(self):
        client = gemini_client(
            lambda request: httpx.Response(200, json=gemini_response("I cannot help"))
        )
        with pytest.raises(GeminiError):
            await client.generate_json([{"text": "hi"}], {})

    def test_missing_api_key(self):
        with pytest.raises(GeminiError):
            GeminiClient(api_key="")


def _request():
    from crowdguard.analysis import RiskRequest

    return RiskRequest(metrics=(make_metric(),), alert_messages=["msg"])
