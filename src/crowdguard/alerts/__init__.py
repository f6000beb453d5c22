"""
Alerts Module
=============

Alert evaluation and lifecycle.

Components:
    - AlertEvaluator: Stochastic high-density trigger policy
    - AlertPolicy: Trigger configuration
    - AlertBoard: Bounded most-recent-first active-alert list with
      operator acknowledgement
"""

from crowdguard.alerts.lifecycle import AlertBoard
from crowdguard.alerts.evaluator import AlertEvaluator, AlertPolicy

__all__ = [
    "AlertBoard",
    "AlertEvaluator",
    "AlertPolicy",
]
