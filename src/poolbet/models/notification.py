"""Structured notifications for indexing/observability collaborators."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class NotificationKind(str, Enum):
    EVENT_CREATED = "event_created"
    STAKE_PLACED = "stake_placed"
    EVENT_CLOSED = "event_closed"
    EVENT_RESOLVED = "event_resolved"
    RESOLUTION_SKIPPED = "resolution_skipped"
    BATCH_RESOLVED = "batch_resolved"
    EVENT_CANCELLED = "event_cancelled"
    CANCELLATION_SKIPPED = "cancellation_skipped"
    BATCH_CANCELLED = "batch_cancelled"
    CLAIM_PAID = "claim_paid"
    BATCH_CLAIM_PAID = "batch_claim_paid"
    FEES_WITHDRAWN = "fees_withdrawn"
    CONFIG_UPDATED = "config_updated"


class Notification(BaseModel):
    seq: int
    kind: NotificationKind
    timestamp: int  # epoch seconds
    event_id: int | None = None
    participant: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
