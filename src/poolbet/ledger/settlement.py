"""SettlementEngine - fixes the payout basis of an event and evaluates the parimutuel formula.

Settlement stores parameters (result, fee rate, fee, dust) on the event, never per-participant amounts.
Every payout is recomputed from those parameters with the same formula, so a quote and the
amount actually paid can never diverge.

Policy, evaluated in order for the winning outcome's pool W and total pool T:

1. W == 0: nobody picked the result. No fee, every stake is refunded.
2. W == T: everybody picked the result. No fee, every stake is paid back as-is.
3. otherwise: fee = FeePolicy(T, rate); a winning stake a is paid floor(a * (T - fee) / W).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

from poolbet.ledger.config import BPS_DENOMINATOR
from poolbet.ledger.errors import InvalidOutcome, NotAWinner
from poolbet.ledger.fees import FeePolicy
from poolbet.ledger.pool import PoolLedger
from poolbet.models.event import Event, EventStatus, Odds, Outcome
from poolbet.models.results import PayoutKind
from poolbet.models.stake import Stake

log = structlog.get_logger(__name__)


class SettlementKind(str, Enum):
    NO_WINNER = "NO_WINNER"
    ALL_WINNERS = "ALL_WINNERS"
    MIXED = "MIXED"


@dataclass(frozen=True)
class SettlementBasis:
    """Parameters that determine every payout of a resolved event."""

    event_id: int
    result: Outcome
    total: int
    winner_pool: int
    fee: int
    kind: SettlementKind

    @property
    def distributable(self) -> int:
        return self.total - self.fee

    def payout(self, stake: Stake) -> tuple[int, PayoutKind]:
        """Amount owed to a stake. Raises NotAWinner for a losing stake in a mixed pool."""
        if self.kind == SettlementKind.NO_WINNER:
            return stake.amount, PayoutKind.REFUND
        if stake.outcome != self.result:
            raise NotAWinner(event_id=self.event_id, participant=stake.participant)
        if self.kind == SettlementKind.ALL_WINNERS:
            return stake.amount, PayoutKind.REFUND
        return stake.amount * self.distributable // self.winner_pool, PayoutKind.WINNINGS


def classify(total: int, winner_pool: int) -> SettlementKind:
    if winner_pool == 0:
        return SettlementKind.NO_WINNER
    if winner_pool == total:
        return SettlementKind.ALL_WINNERS
    return SettlementKind.MIXED


class SettlementEngine:
    def __init__(self, pool: PoolLedger, fees: FeePolicy | None = None) -> None:
        self.pool = pool
        self.fees = fees or FeePolicy()

    def compute_basis(self, event: Event, outcome: Outcome, fee_bps: int) -> SettlementBasis:
        """Basis the event would settle with if `outcome` occurred now. No state change."""
        if outcome not in Outcome.stakeable():
            raise InvalidOutcome(event_id=event.event_id, outcome=int(outcome))
        total = event.total_pool
        winner_pool = event.pool_for(outcome)
        kind = classify(total, winner_pool)
        fee = self.fees.compute_fee(total, fee_bps) if kind == SettlementKind.MIXED else 0
        return SettlementBasis(
            event_id=event.event_id,
            result=outcome,
            total=total,
            winner_pool=winner_pool,
            fee=fee,
            kind=kind,
        )

    def dust_for(self, basis: SettlementBasis) -> int:
        """Floor-division remainder left undistributed. Exact, since stakes are frozen at settlement."""
        if basis.kind != SettlementKind.MIXED:
            return 0
        paid = sum(
            basis.payout(s)[0] for s in self.pool.stakes_for(basis.event_id) if s.outcome == basis.result
        )
        return basis.distributable - paid

    def settle(self, event: Event, outcome: Outcome, fee_bps: int) -> SettlementBasis:
        """Fix result, fee and dust on the event. Caller owns the status transition and the lock."""
        basis = self.compute_basis(event, outcome, fee_bps)
        dust = self.dust_for(basis)
        event.result = outcome
        event.fee_bps = fee_bps
        event.fee_amount = basis.fee
        event.dust_amount = dust
        log.debug(
            "event_settled",
            event_id=event.event_id,
            kind=basis.kind.value,
            fee_bps=fee_bps,
            total=basis.total,
            winner_pool=basis.winner_pool,
            fee=basis.fee,
            dust=dust,
        )
        return basis

    def basis_of(self, event: Event) -> SettlementBasis:
        """Rebuild the basis from what settle() stored on a resolved event."""
        total = event.total_pool
        winner_pool = event.pool_for(event.result)
        return SettlementBasis(
            event_id=event.event_id,
            result=event.result,
            total=total,
            winner_pool=winner_pool,
            fee=event.fee_amount,
            kind=classify(total, winner_pool),
        )

    def payout_for(self, event: Event, stake: Stake) -> tuple[int, PayoutKind]:
        """Payout of a stake on a settled event; cancelled events refund the full stake."""
        if event.status == EventStatus.CANCELLED:
            return stake.amount, PayoutKind.REFUND
        return self.basis_of(event).payout(stake)

    def odds(self, event: Event, fee_bps: int) -> Odds:
        """Projected multiplier per outcome, in bps. Resolved events use the fee actually charged."""
        multipliers: dict[Outcome, int] = {}
        for outcome in Outcome.stakeable():
            pool = event.pool_for(outcome)
            if pool == 0:
                multipliers[outcome] = 0
                continue
            if event.status == EventStatus.RESOLVED and outcome == event.result:
                basis = self.basis_of(event)
            else:
                basis = self.compute_basis(event, outcome, fee_bps)
            multipliers[outcome] = basis.distributable * BPS_DENOMINATOR // pool
        return Odds(
            event_id=event.event_id,
            home_bps=multipliers[Outcome.HOME],
            draw_bps=multipliers[Outcome.DRAW],
            away_bps=multipliers[Outcome.AWAY],
        )
