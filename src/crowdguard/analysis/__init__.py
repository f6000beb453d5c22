"""
Analysis Module
===============

Periodic AI-assisted risk analysis.

This module implements:
    - orchestrator.py: LangGraph cycle (context → score → fallback)
    - scorer.py: Risk-scoring contract, Gemini backend, fixed fallbacks
    - gemini.py: Async Gemini REST client shared with video inference

Key Design Decisions:
    - LangGraph is used for STRUCTURE, not for the scoring itself
    - Every failure degrades to a fixed, deterministic analysis
    - Offline mode is explicit configuration checked before any call
"""

from crowdguard.analysis.gemini import GeminiClient, GeminiError
from crowdguard.analysis.orchestrator import AnalysisCycle, RiskAnalysisOrchestrator
from crowdguard.analysis.scorer import (
    FALLBACK_ANALYSIS,
    INITIAL_ANALYSIS,
    OFFLINE_ANALYSIS,
    GeminiRiskScorer,
    RiskRequest,
    RiskScorer,
    RiskScoringError,
)

__all__ = [
    "GeminiClient",
    "GeminiError",
    "AnalysisCycle",
    "RiskAnalysisOrchestrator",
    "FALLBACK_ANALYSIS",
    "INITIAL_ANALYSIS",
    "OFFLINE_ANALYSIS",
    "GeminiRiskScorer",
    "RiskRequest",
    "RiskScorer",
    "RiskScoringError",
]
