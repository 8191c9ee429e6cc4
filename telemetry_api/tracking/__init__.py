from .keyed_lock import KeyedLock, stripe_index
from .presence_tracker import (
    PresenceTracker,
    PresenceTransition,
    RejectReason,
    RuleDecision,
    TrackerEntry,
    presence_of,
)

__all__ = [
    "KeyedLock",
    "PresenceTracker",
    "PresenceTransition",
    "RejectReason",
    "RuleDecision",
    "TrackerEntry",
    "presence_of",
    "stripe_index",
]
