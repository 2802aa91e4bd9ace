"""Event (one wagering market), its outcomes, status, and pool views."""

from __future__ import annotations

from enum import Enum, IntEnum

from pydantic import BaseModel, Field

MAX_META_LENGTH = 64


class Outcome(IntEnum):
    """Mutually exclusive outcomes. NONE marks an unresolved event and is never stakeable."""

    NONE = 0
    HOME = 1
    DRAW = 2
    AWAY = 3

    @classmethod
    def stakeable(cls) -> tuple[Outcome, ...]:
        return (cls.HOME, cls.DRAW, cls.AWAY)


class EventStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    RESOLVED = "RESOLVED"
    CANCELLED = "CANCELLED"

    @property
    def terminal(self) -> bool:
        return self in (EventStatus.RESOLVED, EventStatus.CANCELLED)


class EventMeta(BaseModel):
    """Descriptive metadata supplied at creation."""

    home_team: str = Field(..., min_length=1, max_length=MAX_META_LENGTH)
    away_team: str = Field(..., min_length=1, max_length=MAX_META_LENGTH)
    competition: str = Field(..., min_length=1, max_length=MAX_META_LENGTH)


class Event(BaseModel):
    """One wagering market. total_pool always equals home_pool + draw_pool + away_pool."""

    event_id: int
    home_team: str
    away_team: str
    competition: str
    start_time: int  # epoch seconds; staking stops here
    status: EventStatus = EventStatus.OPEN
    result: Outcome = Outcome.NONE

    total_pool: int = 0
    home_pool: int = 0
    draw_pool: int = 0
    away_pool: int = 0
    home_count: int = 0
    draw_count: int = 0
    away_count: int = 0

    fee_bps: int = 0  # rate applied at resolution
    fee_amount: int = 0  # fixed at resolution
    dust_amount: int = 0  # floor-division remainder retained at resolution
    total_claimed: int = 0

    created_at: int | None = None
    closed_at: int | None = None
    resolved_at: int | None = None
    cancelled_at: int | None = None
    cancellation_reason: str | None = None

    def pool_for(self, outcome: Outcome) -> int:
        if outcome == Outcome.HOME:
            return self.home_pool
        if outcome == Outcome.DRAW:
            return self.draw_pool
        if outcome == Outcome.AWAY:
            return self.away_pool
        return 0

    def count_for(self, outcome: Outcome) -> int:
        if outcome == Outcome.HOME:
            return self.home_count
        if outcome == Outcome.DRAW:
            return self.draw_count
        if outcome == Outcome.AWAY:
            return self.away_count
        return 0

    @property
    def staker_count(self) -> int:
        return self.home_count + self.draw_count + self.away_count


class Pools(BaseModel):
    """Per-outcome pool view of an event."""

    event_id: int
    total: int
    home: int
    draw: int
    away: int


class Odds(BaseModel):
    """Projected payout multiplier per outcome in basis points (10000 = 1.0x). 0 when the outcome has no stake."""

    event_id: int
    home_bps: int
    draw_bps: int
    away_bps: int
