"""Per-entry batch outcomes and claim quotes."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class SkipReason(str, Enum):
    """Why a batch entry was skipped instead of applied."""

    ALREADY_RESOLVED_SAME_RESULT = "ALREADY_RESOLVED_SAME_RESULT"
    ALREADY_RESOLVED_DIFFERENT_RESULT = "ALREADY_RESOLVED_DIFFERENT_RESULT"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    MATCH_NOT_FOUND = "MATCH_NOT_FOUND"
    MATCH_IS_RESOLVED = "MATCH_IS_RESOLVED"
    KICKOFF_NOT_REACHED = "KICKOFF_NOT_REACHED"
    INVALID_OUTCOME = "INVALID_OUTCOME"


class BatchEntry(BaseModel):
    event_id: int
    applied: bool
    reason: SkipReason | None = None


class BatchResult(BaseModel):
    """Outcome of resolve_many / cancel_many: one entry per input position."""

    entries: list[BatchEntry] = Field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return sum(1 for e in self.entries if e.applied)

    @property
    def skipped(self) -> list[BatchEntry]:
        return [e for e in self.entries if not e.applied]

    @property
    def skipped_count(self) -> int:
        return len(self.entries) - self.applied_count


class PayoutKind(str, Enum):
    WINNINGS = "WINNINGS"
    REFUND = "REFUND"


class ClaimStatus(str, Enum):
    CLAIMABLE = "CLAIMABLE"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    NOT_SETTLED = "NOT_SETTLED"
    NO_STAKE = "NO_STAKE"
    ALREADY_CLAIMED = "ALREADY_CLAIMED"
    NOT_A_WINNER = "NOT_A_WINNER"


class ClaimQuote(BaseModel):
    """What a claim for (event, participant) would pay right now."""

    event_id: int
    participant: str
    status: ClaimStatus
    amount: int = 0
    stake: int = 0
    kind: PayoutKind | None = None

    @property
    def claimable(self) -> bool:
        return self.status == ClaimStatus.CLAIMABLE

    @property
    def profit(self) -> int:
        """Payout minus stake for winnings; refunds carry no profit."""
        if self.kind == PayoutKind.WINNINGS:
            return self.amount - self.stake
        return 0
