"""Background refresh jobs."""

from .activity import ActiveSessionTracker, get_session_tracker
from .scheduler import RefreshScheduler, get_scheduler


__all__ = [
    "ActiveSessionTracker",
    "RefreshScheduler",
    "get_scheduler",
    "get_session_tracker",
]
