"""SettlementLedger - the operations exposed to the (already authorized) caller collaborator."""

from __future__ import annotations

import time
from threading import Lock
from typing import Any, Callable, Sequence

import structlog

from poolbet.ledger.aggregates import StatsBook
from poolbet.ledger.claims import ClaimLedger
from poolbet.ledger.config import LedgerConfig
from poolbet.ledger.custody import Custody, InMemoryCustody
from poolbet.ledger.errors import LedgerError, TransferError
from poolbet.ledger.locks import EventLocks
from poolbet.ledger.notifications import Notifier, Sink
from poolbet.ledger.pool import PoolLedger
from poolbet.ledger.settlement import SettlementBasis, SettlementEngine, SettlementKind
from poolbet.ledger.state_machine import MatchStateMachine, coerce_outcome
from poolbet.models.event import Event, EventMeta, EventStatus, Odds, Outcome, Pools
from poolbet.models.notification import NotificationKind
from poolbet.models.results import BatchResult, ClaimQuote, PayoutKind
from poolbet.models.stake import Stake
from poolbet.models.stats import GlobalStats, ParticipantStats

log = structlog.get_logger(__name__)


def _epoch_now() -> int:
    return int(time.time())


class SettlementLedger:
    """Pool accounting and settlement. Every mutation is serialized per event.

    Timestamps default to the injected clock; callers that already hold a validated
    timestamp pass it as `now`.
    """

    def __init__(
        self,
        config: LedgerConfig | None = None,
        custody: Custody | None = None,
        clock: Callable[[], int] = _epoch_now,
        notifier: Notifier | None = None,
    ) -> None:
        self._cfg = (config or LedgerConfig()).validated()
        self._cfg_lock = Lock()
        self.custody = custody if custody is not None else InMemoryCustody()
        self.clock = clock
        self.notifier = notifier or Notifier()
        self.locks = EventLocks()
        self.stats = StatsBook()
        self.pool = PoolLedger()
        self.settlement = SettlementEngine(self.pool)
        self.matches = MatchStateMachine(
            self.pool, self.settlement, self.locks, self.notifier, self.stats, self.config
        )
        self.claims = ClaimLedger(
            self.pool, self.settlement, self.locks, self.notifier, self.stats, self.custody, self.config
        )

    def _now(self, now: int | None) -> int:
        return self.clock() if now is None else now

    def subscribe(self, sink: Sink) -> None:
        self.notifier.subscribe(sink)

    # --- configuration ---

    def config(self) -> LedgerConfig:
        with self._cfg_lock:
            return self._cfg

    def _update_config(self, setting: str, build: Callable[[LedgerConfig], LedgerConfig], now: int | None) -> LedgerConfig:
        with self._cfg_lock:
            previous = self._cfg
            self._cfg = build(previous)
            current = self._cfg
        self.notifier.emit(
            NotificationKind.CONFIG_UPDATED,
            self._now(now),
            setting=setting,
            previous=_config_view(previous, setting),
            current=_config_view(current, setting),
        )
        return previous

    def update_stake_limits(self, min_stake: int, max_stake: int, now: int | None = None) -> tuple[int, int]:
        """Apply new limits; returns the previous (min, max)."""
        previous = self._update_config(
            "stake_limits", lambda c: c.with_stake_limits(min_stake, max_stake), now
        )
        return previous.min_stake, previous.max_stake

    def update_fee_rate(self, fee_bps: int, now: int | None = None) -> int:
        """Apply a new fee rate; returns the previous rate. Settled events keep their fee."""
        return self._update_config("fee_bps", lambda c: c.with_fee_rate(fee_bps), now).fee_bps

    def update_grace_period(self, grace_period_sec: int, now: int | None = None) -> int:
        return self._update_config(
            "grace_period_sec", lambda c: c.with_grace_period(grace_period_sec), now
        ).grace_period_sec

    # --- lifecycle ---

    def create_event(self, meta: EventMeta | dict[str, Any], start_time: int, now: int | None = None) -> int:
        return self.matches.create_event(meta, start_time, self._now(now)).event_id

    def record_stake(
        self,
        event_id: int,
        participant: str,
        outcome: Any,
        amount: int,
        now: int | None = None,
    ) -> Stake:
        """Collect `amount` into custody and record the stake, atomically."""
        now = self._now(now)
        resolved = coerce_outcome(outcome)
        cfg = self.config()
        with self.locks.hold([event_id]):
            event = self.pool.get_event(event_id)
            self.pool.check_stake(
                event, participant, resolved if resolved is not None else Outcome.NONE, amount, now, cfg
            )
            try:
                self.custody.collect(participant, amount)
            except Exception as exc:
                log.warning("stake_transfer_failed", event_id=event_id, participant=participant, amount=amount)
                raise TransferError(str(exc), participant=participant, amount=amount) from exc
            stake = self.pool.record_stake(event, participant, resolved, amount, now, cfg)
            self.stats.stake_placed(participant, amount, now)
            self.notifier.emit(
                NotificationKind.STAKE_PLACED,
                now,
                event_id=event_id,
                participant=participant,
                outcome=resolved.name,
                amount=amount,
                total_pool=event.total_pool,
                outcome_pool=event.pool_for(resolved),
            )
            return stake.model_copy()

    def close_event(self, event_id: int, now: int | None = None) -> None:
        self.matches.close(event_id, self._now(now))

    def close_expired(self, now: int | None = None) -> list[int]:
        return self.matches.close_expired(self._now(now))

    def resolve(self, event_id: int, outcome: Any, now: int | None = None) -> SettlementBasis:
        return self.matches.resolve(event_id, outcome, self._now(now))

    def resolve_many(
        self, event_ids: Sequence[int], outcomes: Sequence[Any], now: int | None = None
    ) -> BatchResult:
        return self.matches.resolve_many(event_ids, outcomes, self._now(now))

    def cancel(self, event_id: int, reason: str, now: int | None = None) -> None:
        self.matches.cancel(event_id, reason, self._now(now))

    def cancel_many(self, event_ids: Sequence[int], reason: str, now: int | None = None) -> BatchResult:
        return self.matches.cancel_many(event_ids, reason, self._now(now))

    # --- claims ---

    def claim(self, event_id: int, participant: str, now: int | None = None) -> int:
        return self.claims.claim(event_id, participant, self._now(now))

    def claim_batch(self, event_ids: Sequence[int], participant: str, now: int | None = None) -> int:
        return self.claims.claim_batch(event_ids, participant, self._now(now))

    def get_claimable(self, event_id: int, participant: str) -> ClaimQuote:
        return self.claims.quote(event_id, participant)

    def get_claimable_batch(self, event_ids: Sequence[int], participant: str) -> list[ClaimQuote]:
        return self.claims.quote_batch(event_ids, participant)

    # --- fees ---

    def withdraw_fees(self, amount: int | None = None, recipient: str = "treasury", now: int | None = None) -> int:
        """Pay retained fees and dust to `recipient`. None withdraws the whole balance."""
        taken = self.stats.reserve_fee_withdrawal(amount)
        try:
            self.custody.pay(recipient, taken)
        except Exception as exc:
            self.stats.release_fee_withdrawal(taken)
            log.warning("fee_transfer_failed", recipient=recipient, amount=taken)
            raise TransferError(str(exc), participant=recipient, amount=taken) from exc
        self.notifier.emit(
            NotificationKind.FEES_WITHDRAWN,
            self._now(now),
            participant=recipient,
            amount=taken,
            remaining=self.stats.snapshot().fee_balance,
        )
        return taken

    # --- queries ---

    def get_event(self, event_id: int) -> Event:
        with self.locks.hold([event_id]):
            return self.pool.get_event(event_id).model_copy()

    def list_events(self) -> list[Event]:
        out = []
        for event in self.pool.events():
            with self.locks.hold([event.event_id]):
                out.append(event.model_copy())
        return out

    def get_stake(self, event_id: int, participant: str) -> Stake | None:
        with self.locks.hold([event_id]):
            stake = self.pool.find_stake(event_id, participant)
            return stake.model_copy() if stake else None

    def get_stakes(self, event_id: int) -> list[Stake]:
        with self.locks.hold([event_id]):
            self.pool.get_event(event_id)
            return [s.model_copy() for s in self.pool.stakes_for(event_id)]

    def get_pools(self, event_id: int) -> Pools:
        with self.locks.hold([event_id]):
            event = self.pool.get_event(event_id)
            return Pools(
                event_id=event_id,
                total=event.total_pool,
                home=event.home_pool,
                draw=event.draw_pool,
                away=event.away_pool,
            )

    def get_odds(self, event_id: int) -> Odds:
        cfg = self.config()
        with self.locks.hold([event_id]):
            return self.settlement.odds(self.pool.get_event(event_id), cfg.fee_bps)

    def global_stats(self) -> GlobalStats:
        return self.stats.snapshot()

    def participant_stats(self, participant: str) -> ParticipantStats:
        return self.stats.participant(participant)

    def snapshot(self) -> tuple[list[Event], list[Stake], GlobalStats, list[ParticipantStats]]:
        """Copies of every event, stake and aggregate, taken with creation and all event locks held."""
        with self.matches.creation_lock:
            ids = [e.event_id for e in self.pool.events()]
            with self.locks.hold(ids):
                events = [self.pool.get_event(i).model_copy() for i in ids]
                stakes = [s.model_copy() for i in ids for s in self.pool.stakes_for(i)]
                return events, stakes, self.stats.snapshot(), self.stats.participants()

    # --- invariants ---

    def verify_conservation(self) -> list[str]:
        """Human-readable violations of the pool/payout conservation rules; empty when consistent."""
        problems: list[str] = []
        for candidate in self.pool.events():
            with self.locks.hold([candidate.event_id]):
                problems.extend(self._check_event(candidate))
        return problems

    def _check_event(self, event: Event) -> list[str]:
        eid = event.event_id
        stakes = self.pool.stakes_for(eid)
        problems: list[str] = []
        if event.total_pool != event.home_pool + event.draw_pool + event.away_pool:
            problems.append(f"event {eid}: total_pool != sum of outcome pools")
        if event.total_pool != sum(s.amount for s in stakes):
            problems.append(f"event {eid}: total_pool != sum of stakes")
        for outcome in Outcome.stakeable():
            on_outcome = [s for s in stakes if s.outcome == outcome]
            if event.pool_for(outcome) != sum(s.amount for s in on_outcome):
                problems.append(f"event {eid}: {outcome.name} pool != sum of its stakes")
            if event.count_for(outcome) != len(on_outcome):
                problems.append(f"event {eid}: {outcome.name} staker count mismatch")
        paid = sum(s.payout or 0 for s in stakes if s.claimed)
        if paid != event.total_claimed:
            problems.append(f"event {eid}: total_claimed != sum of paid claims")
        if event.status in (EventStatus.OPEN, EventStatus.CLOSED):
            if event.total_claimed or event.fee_amount or event.dust_amount:
                problems.append(f"event {eid}: unsettled event has claims or fee")
            return problems
        if event.status == EventStatus.RESOLVED:
            problems.extend(self._check_settlement(event))
        owed = 0
        for s in stakes:
            if s.claimed:
                continue
            if event.status == EventStatus.CANCELLED:
                owed += s.amount
                continue
            basis = self.settlement.basis_of(event)
            if basis.kind == SettlementKind.NO_WINNER or s.outcome == event.result:
                owed += basis.payout(s)[0]
        retained = event.fee_amount + event.dust_amount if event.status == EventStatus.RESOLVED else 0
        if event.total_pool != retained + paid + owed:
            problems.append(
                f"event {eid}: total_pool {event.total_pool} != fee+dust {retained} + paid {paid} + owed {owed}"
            )
        return problems

    def _check_settlement(self, event: Event) -> list[str]:
        """Stored fee and dust must be what the recorded rate and the stakes produce."""
        eid = event.event_id
        try:
            expected = self.settlement.compute_basis(event, event.result, event.fee_bps)
        except LedgerError as exc:
            return [f"event {eid}: settlement cannot be recomputed ({exc.code})"]
        if event.fee_amount != expected.fee:
            return [f"event {eid}: fee_amount {event.fee_amount} != {expected.fee} at {event.fee_bps} bps"]
        dust = self.settlement.dust_for(expected)
        if event.dust_amount != dust:
            return [f"event {eid}: dust_amount {event.dust_amount} != {dust}"]
        return []

    # --- restore (storage layer) ---

    def restore(
        self,
        events: Sequence[Event],
        stakes: Sequence[Stake],
        stats: GlobalStats | None = None,
        participants: Sequence[ParticipantStats] | None = None,
    ) -> None:
        """Load persisted records into an empty ledger. Missing aggregates are rebuilt from the records."""
        for event in events:
            self.pool.add_event(event.model_copy())
        for stake in sorted(stakes, key=lambda s: (s.placed_at or 0, s.event_id)):
            self.pool.restore_stake(stake.model_copy())
        if stats is None or participants is None:
            stats, participants = self._rebuild_stats()
        self.stats.load(stats, list(participants))
        next_id = max((e.event_id for e in events), default=0) + 1
        self.matches.restore_ids(next_id)

    def _rebuild_stats(self) -> tuple[GlobalStats, list[ParticipantStats]]:
        g = GlobalStats()
        people: dict[str, ParticipantStats] = {}
        for event in self.pool.events():
            g.total_events += 1
            if event.status == EventStatus.RESOLVED:
                g.resolved_events += 1
                g.total_fees_collected += event.fee_amount
                g.dust_retained += event.dust_amount
                g.fee_balance += event.fee_amount + event.dust_amount
            elif event.status == EventStatus.CANCELLED:
                g.cancelled_events += 1
            else:
                g.active_events += 1
            for s in self.pool.stakes_for(event.event_id):
                p = people.setdefault(s.participant, ParticipantStats(participant=s.participant))
                p.total_stakes += 1
                p.total_wagered += s.amount
                g.total_stakes += 1
                g.total_volume += s.amount
                if not s.claimed:
                    continue
                payout = s.payout or 0
                p.total_claimed += payout
                g.total_paid_out += payout
                _, kind = self.settlement.payout_for(event, s)
                if kind == PayoutKind.WINNINGS:
                    p.total_won += payout
                    p.total_profit += payout - s.amount
                    if payout > s.amount:
                        p.win_count += 1
                else:
                    p.refund_count += 1
        g.unique_participants = len(people)
        return g, list(people.values())


def _config_view(cfg: LedgerConfig, setting: str) -> Any:
    if setting == "stake_limits":
        return [cfg.min_stake, cfg.max_stake]
    return getattr(cfg, setting)
