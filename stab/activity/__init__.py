"""
stab.activity — What the host tells us about resource use: the
last-active ledger, engagement and relationship tracking, and the
bounded activity log and closed history.
"""

from stab.activity.ledger import ActivityLedger
from stab.activity.log import ActivityLog, ClosedHistory
from stab.activity.tracker import EngagementTracker, FocusChange

__all__ = [
    "ActivityLedger",
    "ActivityLog",
    "ClosedHistory",
    "EngagementTracker",
    "FocusChange",
]
