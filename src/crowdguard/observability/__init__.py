"""
Observability Module
====================

Activity logging for the monitoring core.

Components:
    - ActivityLog: Fire-and-forget event sink (logger + bounded tail)
"""

from crowdguard.observability.activity import ActivityLog

__all__ = [
    "ActivityLog",
]
