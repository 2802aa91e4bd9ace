"""Ledger records (Pydantic) - Event, Stake, batch results, notifications, stats."""

from poolbet.models.event import Event, EventMeta, EventStatus, Odds, Outcome, Pools
from poolbet.models.notification import Notification, NotificationKind
from poolbet.models.results import (
    BatchEntry,
    BatchResult,
    ClaimQuote,
    ClaimStatus,
    PayoutKind,
    SkipReason,
)
from poolbet.models.stake import Stake
from poolbet.models.stats import GlobalStats, ParticipantStats

__all__ = [
    "Event",
    "EventMeta",
    "EventStatus",
    "Outcome",
    "Pools",
    "Odds",
    "Stake",
    "BatchEntry",
    "BatchResult",
    "ClaimQuote",
    "ClaimStatus",
    "PayoutKind",
    "SkipReason",
    "Notification",
    "NotificationKind",
    "GlobalStats",
    "ParticipantStats",
]
