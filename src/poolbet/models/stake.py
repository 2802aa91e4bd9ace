"""Stake - one participant's position in one event."""

from __future__ import annotations

from pydantic import BaseModel, Field

from poolbet.models.event import Outcome


class Stake(BaseModel):
    """Created once at placement; only `claimed` (and its payout record) changes afterwards."""

    event_id: int
    participant: str
    amount: int = Field(..., gt=0)
    outcome: Outcome
    claimed: bool = False
    placed_at: int | None = None
    payout: int | None = None
    claimed_at: int | None = None
