"""ClaimLedger - pays winnings and refunds, singly or aggregated over a batch of events."""

from __future__ import annotations

from typing import Callable, Sequence

import structlog

from poolbet.ledger.aggregates import StatsBook
from poolbet.ledger.config import LedgerConfig
from poolbet.ledger.custody import Custody
from poolbet.ledger.errors import (
    AlreadyClaimed,
    EventNotFound,
    LedgerError,
    NoStake,
    NotAWinner,
    NothingToClaim,
    NotResolved,
    TransferError,
)
from poolbet.ledger.locks import EventLocks
from poolbet.ledger.notifications import Notifier
from poolbet.ledger.pool import PoolLedger
from poolbet.ledger.settlement import SettlementEngine
from poolbet.ledger.state_machine import check_batch
from poolbet.models.event import EventStatus
from poolbet.models.notification import NotificationKind
from poolbet.models.results import ClaimQuote, ClaimStatus, PayoutKind

log = structlog.get_logger(__name__)

_CLAIM_ERRORS: dict[ClaimStatus, type[LedgerError]] = {
    ClaimStatus.EVENT_NOT_FOUND: EventNotFound,
    ClaimStatus.NOT_SETTLED: NotResolved,
    ClaimStatus.NO_STAKE: NoStake,
    ClaimStatus.ALREADY_CLAIMED: AlreadyClaimed,
    ClaimStatus.NOT_A_WINNER: NotAWinner,
}


class ClaimLedger:
    def __init__(
        self,
        pool: PoolLedger,
        settlement: SettlementEngine,
        locks: EventLocks,
        notifier: Notifier,
        stats: StatsBook,
        custody: Custody,
        config: Callable[[], LedgerConfig],
    ) -> None:
        self.pool = pool
        self.settlement = settlement
        self.locks = locks
        self.notifier = notifier
        self.stats = stats
        self.custody = custody
        self._config = config

    def _evaluate(self, event_id: int, participant: str) -> ClaimQuote:
        """Single source of truth for claimability and amount. Caller holds the event lock."""
        event = self.pool.find_event(event_id)
        if event is None:
            return ClaimQuote(event_id=event_id, participant=participant, status=ClaimStatus.EVENT_NOT_FOUND)
        if event.status not in (EventStatus.RESOLVED, EventStatus.CANCELLED):
            return ClaimQuote(event_id=event_id, participant=participant, status=ClaimStatus.NOT_SETTLED)
        stake = self.pool.find_stake(event_id, participant)
        if stake is None:
            return ClaimQuote(event_id=event_id, participant=participant, status=ClaimStatus.NO_STAKE)
        if stake.claimed:
            return ClaimQuote(
                event_id=event_id,
                participant=participant,
                status=ClaimStatus.ALREADY_CLAIMED,
                stake=stake.amount,
            )
        try:
            amount, kind = self.settlement.payout_for(event, stake)
        except NotAWinner:
            return ClaimQuote(
                event_id=event_id,
                participant=participant,
                status=ClaimStatus.NOT_A_WINNER,
                stake=stake.amount,
            )
        return ClaimQuote(
            event_id=event_id,
            participant=participant,
            status=ClaimStatus.CLAIMABLE,
            amount=amount,
            stake=stake.amount,
            kind=kind,
        )

    def quote(self, event_id: int, participant: str) -> ClaimQuote:
        with self.locks.hold([event_id]):
            return self._evaluate(event_id, participant)

    def quote_batch(self, event_ids: Sequence[int], participant: str) -> list[ClaimQuote]:
        """Claimable subset of event_ids, in input order, duplicates dropped."""
        quotes: list[ClaimQuote] = []
        seen: set[int] = set()
        with self.locks.hold(event_ids):
            for event_id in event_ids:
                if event_id in seen:
                    continue
                seen.add(event_id)
                q = self._evaluate(event_id, participant)
                if q.claimable:
                    quotes.append(q)
        return quotes

    def _transfer(self, participant: str, amount: int, event_ids: list[int]) -> None:
        try:
            self.custody.pay(participant, amount)
        except Exception as exc:
            log.warning("payout_transfer_failed", participant=participant, amount=amount, event_ids=event_ids)
            raise TransferError(str(exc), participant=participant, amount=amount) from exc

    def _record(self, quote: ClaimQuote, now: int, batch: bool) -> None:
        stake = self.pool.find_stake(quote.event_id, quote.participant)
        self.pool.mark_claimed(stake, quote.amount, now)
        self.stats.claim_paid(quote.participant, quote.amount, quote.profit, quote.kind, now)
        self.notifier.emit(
            NotificationKind.CLAIM_PAID,
            now,
            event_id=quote.event_id,
            participant=quote.participant,
            amount=quote.amount,
            stake=quote.stake,
            profit=quote.profit,
            payout_kind=quote.kind.value,
            batch=batch,
        )

    def claim(self, event_id: int, participant: str, now: int) -> int:
        with self.locks.hold([event_id]):
            quote = self._evaluate(event_id, participant)
            if not quote.claimable:
                raise _CLAIM_ERRORS[quote.status](event_id=event_id, participant=participant)
            self._transfer(participant, quote.amount, [event_id])
            self._record(quote, now, batch=False)
            return quote.amount

    def claim_batch(self, event_ids: Sequence[int], participant: str, now: int) -> int:
        """Pay every claimable entry in one transfer. Non-claimable entries are skipped silently."""
        check_batch(len(event_ids), self._config())
        with self.locks.hold(event_ids):
            quotes: list[ClaimQuote] = []
            seen: set[int] = set()
            for event_id in event_ids:
                if event_id in seen:
                    continue
                seen.add(event_id)
                q = self._evaluate(event_id, participant)
                if q.claimable:
                    quotes.append(q)
            total = sum(q.amount for q in quotes)
            if total == 0:
                raise NothingToClaim(participant=participant, event_ids=list(event_ids))
            paid_ids = [q.event_id for q in quotes]
            self._transfer(participant, total, paid_ids)
            for q in quotes:
                self._record(q, now, batch=True)
        self.notifier.emit(
            NotificationKind.BATCH_CLAIM_PAID,
            now,
            participant=participant,
            total=total,
            winnings=sum(q.amount for q in quotes if q.kind == PayoutKind.WINNINGS),
            refunds=sum(q.amount for q in quotes if q.kind == PayoutKind.REFUND),
            event_ids=paid_ids,
            skipped_count=len(event_ids) - len(paid_ids),
        )
        return total
