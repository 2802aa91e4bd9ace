"""Shared aggregate counters. One lock; every increment is a single atomic update."""

from __future__ import annotations

from dataclasses import replace
from threading import Lock

from poolbet.ledger.errors import InsufficientFeeBalance, InvalidAmount
from poolbet.models.results import PayoutKind
from poolbet.models.stats import GlobalStats, ParticipantStats


class StatsBook:
    def __init__(self) -> None:
        self._lock = Lock()
        self._global = GlobalStats()
        self._participants: dict[str, ParticipantStats] = {}

    def _participant(self, participant: str) -> ParticipantStats:
        stats = self._participants.get(participant)
        if stats is None:
            stats = ParticipantStats(participant=participant)
            self._participants[participant] = stats
            self._global.unique_participants += 1
        return stats

    def event_created(self) -> None:
        with self._lock:
            self._global.total_events += 1
            self._global.active_events += 1

    def stake_placed(self, participant: str, amount: int, now: int) -> None:
        with self._lock:
            p = self._participant(participant)
            p.total_stakes += 1
            p.total_wagered += amount
            if p.first_stake_at is None:
                p.first_stake_at = now
            p.last_activity_at = now
            self._global.total_stakes += 1
            self._global.total_volume += amount

    def event_resolved(self, fee: int, dust: int) -> None:
        with self._lock:
            self._global.active_events -= 1
            self._global.resolved_events += 1
            self._global.total_fees_collected += fee
            self._global.dust_retained += dust
            self._global.fee_balance += fee + dust

    def event_cancelled(self) -> None:
        with self._lock:
            self._global.active_events -= 1
            self._global.cancelled_events += 1

    def batch_resolution(self, skipped: int) -> None:
        with self._lock:
            self._global.total_batch_resolutions += 1
            self._global.total_skipped_resolutions += skipped

    def batch_cancellation(self, skipped: int) -> None:
        with self._lock:
            self._global.total_batch_cancellations += 1
            self._global.total_skipped_cancellations += skipped

    def claim_paid(self, participant: str, amount: int, profit: int, kind: PayoutKind, now: int) -> None:
        with self._lock:
            p = self._participant(participant)
            p.total_claimed += amount
            p.last_activity_at = now
            if kind == PayoutKind.WINNINGS:
                p.total_won += amount
                p.total_profit += profit
                if profit > 0:
                    p.win_count += 1
            else:
                p.refund_count += 1
            self._global.total_paid_out += amount

    def reserve_fee_withdrawal(self, amount: int | None) -> int:
        """Debit the fee balance and return the debited amount. None means everything."""
        with self._lock:
            balance = self._global.fee_balance
            if amount is None:
                amount = balance
            if amount <= 0:
                raise InvalidAmount("withdrawal amount must be positive", amount=amount, balance=balance)
            if amount > balance:
                raise InsufficientFeeBalance(amount=amount, balance=balance)
            self._global.fee_balance -= amount
            self._global.total_fees_withdrawn += amount
            return amount

    def release_fee_withdrawal(self, amount: int) -> None:
        with self._lock:
            self._global.fee_balance += amount
            self._global.total_fees_withdrawn -= amount

    def snapshot(self) -> GlobalStats:
        with self._lock:
            return replace(self._global)

    def participant(self, participant: str) -> ParticipantStats:
        with self._lock:
            stats = self._participants.get(participant)
            return replace(stats) if stats else ParticipantStats(participant=participant)

    def participants(self) -> list[ParticipantStats]:
        with self._lock:
            return [replace(p) for p in self._participants.values()]

    def load(self, stats: GlobalStats, participants: list[ParticipantStats]) -> None:
        """Replace all counters (used when restoring a persisted ledger)."""
        with self._lock:
            self._global = replace(stats)
            self._participants = {p.participant: replace(p) for p in participants}
