"""
salesteam - sales team participation ledger.

Reacts to GrantAccess/RevokeAccess events on leads, pre-leads and
opportunities and keeps one start/end-dated zox_salesteam interval per
(user, record) pair.
"""

__version__ = "0.1.0"

from .dispatcher import Services, dispatch
from .engine import Decision, Outcome, ParticipationEngine
from .errors import PluginExecutionError
from .events import ExecutionContext, GrantEvent, MessageName, RevokeEvent

__all__ = [
    "__version__",
    "Decision",
    "ExecutionContext",
    "GrantEvent",
    "MessageName",
    "Outcome",
    "ParticipationEngine",
    "PluginExecutionError",
    "RevokeEvent",
    "Services",
    "dispatch",
]
