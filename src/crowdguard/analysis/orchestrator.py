"""
Risk Analysis Orchestrator
==========================

LangGraph workflow producing the current RiskAnalysis.

LangGraph is used for CONTROL FLOW only; the scoring itself is delegated to
an external RiskScorer.

Graph Structure:
    START → collect_context ─┬─ (window empty) ───────────────→ END
                             ├─ (offline mode / no scorer) → fallback → END
                             └─ score ─┬─ (ok) ──────────────→ END
                                       └─ (error) → fallback → END

Cycle Rules:
    - Context is the 5 most recent samples and the messages of the 3
      most recent alerts
    - Empty window: no invocation, current analysis unchanged
    - Success replaces the current analysis wholesale
    - Any failure (error, timeout, malformed payload) or offline mode
      substitutes a fixed fallback; the fallback never fails
    - No retry beyond the next scheduled cycle
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, TypedDict

from langgraph.graph import END, StateGraph

from crowdguard.alerts.lifecycle import AlertBoard
from crowdguard.analysis.scorer import (
    FALLBACK_ANALYSIS,
    INITIAL_ANALYSIS,
    OFFLINE_ANALYSIS,
    RiskRequest,
    RiskScorer,
)
from crowdguard.models.analysis import RiskAnalysis
from crowdguard.source.window import MetricWindow


logger = logging.getLogger(__name__)


OUTCOME_SKIPPED = "skipped"
OUTCOME_SCORED = "scored"
OUTCOME_FAILED = "failed"
OUTCOME_OFFLINE = "offline"


class AnalysisGraphState(TypedDict):
    """
    State passed through the analysis graph.

    Attributes:
        request: Packaged context (None when the window is empty)
        analysis: Resulting analysis
        outcome: One of skipped / scored / failed / offline
        error: Failure description when outcome is failed
    """
    request: Optional[RiskRequest]
    analysis: Optional[RiskAnalysis]
    outcome: str
    error: Optional[str]


@dataclass(frozen=True)
class AnalysisCycle:
    """Result of one orchestrator cycle that produced an analysis."""

    analysis: RiskAnalysis
    outcome: str
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        """Whether the analysis is a fallback."""
        return self.outcome != OUTCOME_SCORED


class RiskAnalysisOrchestrator:
    """
    Periodic risk analysis with deterministic fallback.

    Holds exactly one current RiskAnalysis, starting from a fixed
    "system initializing" analysis.

    Attributes:
        scorer: External scoring backend (None forces offline behavior)
        offline_mode: Skip external calls and use the offline fallback
        timeout_sec: Upper bound on one scoring call
    """

    def __init__(
        self,
        window: MetricWindow,
        board: AlertBoard,
        scorer: Optional[RiskScorer] = None,
        offline_mode: bool = False,
        timeout_sec: float = 10.0,
        metrics_context: int = 5,
        alerts_context: int = 3,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            window: Metric window to read context from
            board: Alert board to read context from
            scorer: Risk scoring backend
            offline_mode: Never call the scorer
            timeout_sec: Scoring timeout (seconds)
            metrics_context: Number of recent samples sent
            alerts_context: Number of recent alert messages sent
        """
        self.window = window
        self.board = board
        self.scorer = scorer
        self.offline_mode = offline_mode
        self.timeout_sec = timeout_sec
        self.metrics_context = metrics_context
        self.alerts_context = alerts_context

        self._current: RiskAnalysis = INITIAL_ANALYSIS
        self._graph = self._build_graph()

        self.cycles_run: int = 0
        self.failure_count: int = 0

        logger.info(
            f"RiskAnalysisOrchestrator initialized: offline_mode={offline_mode}, "
            f"timeout={timeout_sec}s, context={metrics_context} metrics/"
            f"{alerts_context} alerts"
        )

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(AnalysisGraphState)

        workflow.add_node("collect_context", self._collect_context_node)
        workflow.add_node("score", self._score_node)
        workflow.add_node("fallback", self._fallback_node)

        workflow.set_entry_point("collect_context")
        workflow.add_conditional_edges(
            "collect_context",
            self._route_after_collect,
            {"score": "score", "fallback": "fallback", "end": END},
        )
        workflow.add_conditional_edges(
            "score",
            self._route_after_score,
            {"fallback": "fallback", "end": END},
        )
        workflow.add_edge("fallback", END)

        return workflow.compile()

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def _collect_context_node(self, state: AnalysisGraphState) -> Dict[str, Any]:
        metrics = self.window.snapshot(self.metrics_context)
        if not metrics:
            return {"request": None, "outcome": OUTCOME_SKIPPED}

        request = RiskRequest(
            metrics=metrics,
            alert_messages=self.board.messages(self.alerts_context),
        )
        if self.offline_mode or self.scorer is None:
            return {"request": request, "outcome": OUTCOME_OFFLINE}
        return {"request": request}

    async def _score_node(self, state: AnalysisGraphState) -> Dict[str, Any]:
        try:
            analysis = await asyncio.wait_for(
                self.scorer.score(state["request"]),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError:
            return {
                "outcome": OUTCOME_FAILED,
                "error": f"scoring timed out after {self.timeout_sec}s",
            }
        except Exception as e:
            return {"outcome": OUTCOME_FAILED, "error": f"{type(e).__name__}: {e}"}

        if not isinstance(analysis, RiskAnalysis):
            return {
                "outcome": OUTCOME_FAILED,
                "error": f"scorer returned {type(analysis).__name__}",
            }
        return {"analysis": analysis, "outcome": OUTCOME_SCORED}

    def _fallback_node(self, state: AnalysisGraphState) -> Dict[str, Any]:
        if state.get("outcome") == OUTCOME_OFFLINE:
            return {"analysis": OFFLINE_ANALYSIS}
        return {"analysis": FALLBACK_ANALYSIS}

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    @staticmethod
    def _route_after_collect(state: AnalysisGraphState) -> str:
        outcome = state.get("outcome")
        if outcome == OUTCOME_SKIPPED:
            return "end"
        if outcome == OUTCOME_OFFLINE:
            return "fallback"
        return "score"

    @staticmethod
    def _route_after_score(state: AnalysisGraphState) -> str:
        return "end" if state.get("outcome") == OUTCOME_SCORED else "fallback"

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def current(self) -> RiskAnalysis:
        """The current analysis."""
        return self._current

    async def run_cycle(self) -> Optional[AnalysisCycle]:
        """
        Run one analysis cycle.

        Returns:
            The cycle result, or None if the window was empty and the
            current analysis was left unchanged.
        """
        initial: AnalysisGraphState = {
            "request": None,
            "analysis": None,
            "outcome": "",
            "error": None,
        }
        result = await self._graph.ainvoke(initial)

        outcome = result.get("outcome")
        if outcome == OUTCOME_SKIPPED:
            logger.debug("Analysis skipped, metric window is empty")
            return None

        analysis = result.get("analysis") or FALLBACK_ANALYSIS
        self._current = analysis
        self.cycles_run += 1

        if outcome == OUTCOME_FAILED:
            self.failure_count += 1
            logger.error(f"Risk scoring failed, using fallback: {result.get('error')}")
        else:
            logger.info(
                f"Risk analysis updated: severity={analysis.severity.value}, "
                f"outcome={outcome}"
            )

        return AnalysisCycle(
            analysis=analysis,
            outcome=outcome,
            error=result.get("error"),
        )

    def get_metrics(self) -> Dict[str, Any]:
        """Get orchestrator metrics for observability."""
        return {
            "cycles_run": self.cycles_run,
            "failure_count": self.failure_count,
            "offline_mode": self.offline_mode,
            "severity": self._current.severity.value,
        }
