"""PoolLedger - per-event stake bookkeeping. Events and stakes are id-indexed tables, no back-pointers."""

from __future__ import annotations

from threading import Lock
from typing import Iterator

from poolbet.ledger.config import LedgerConfig
from poolbet.ledger.errors import (
    DuplicateStake,
    EventNotFound,
    EventNotOpen,
    InvalidAmount,
    InvalidMetadata,
    InvalidOutcome,
    StakeOutOfBounds,
    StakingClosed,
)
from poolbet.models.event import Event, EventStatus, Outcome
from poolbet.models.stake import Stake


class PoolLedger:
    """Pure bookkeeping: callers hold the event lock and have already moved the value."""

    def __init__(self) -> None:
        self._events: dict[int, Event] = {}
        self._stakes: dict[tuple[int, str], Stake] = {}
        # event_id -> participants in placement order
        self._stakers: dict[int, list[str]] = {}
        self._tables_lock = Lock()

    def add_event(self, event: Event) -> None:
        with self._tables_lock:
            self._events[event.event_id] = event
            self._stakers[event.event_id] = []

    def find_event(self, event_id: int) -> Event | None:
        return self._events.get(event_id)

    def get_event(self, event_id: int) -> Event:
        event = self._events.get(event_id)
        if event is None:
            raise EventNotFound(event_id=event_id)
        return event

    def events(self) -> Iterator[Event]:
        with self._tables_lock:
            return iter(list(self._events.values()))

    def find_stake(self, event_id: int, participant: str) -> Stake | None:
        return self._stakes.get((event_id, participant))

    def stakes_for(self, event_id: int) -> list[Stake]:
        return [self._stakes[(event_id, p)] for p in self._stakers.get(event_id, [])]

    def check_stake(
        self,
        event: Event,
        participant: str,
        outcome: Outcome,
        amount: int,
        now: int,
        config: LedgerConfig,
    ) -> None:
        """Raise if the stake cannot be recorded. No state change."""
        if not isinstance(participant, str) or not participant:
            raise InvalidMetadata("participant id must be a non-empty string", participant=repr(participant))
        if outcome not in Outcome.stakeable():
            raise InvalidOutcome(event_id=event.event_id, outcome=int(outcome))
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmount("stake amount must be a whole number of units", amount=repr(amount))
        if not config.min_stake <= amount <= config.max_stake:
            raise StakeOutOfBounds(
                amount=amount, min_stake=config.min_stake, max_stake=config.max_stake
            )
        if event.status != EventStatus.OPEN:
            raise EventNotOpen(event_id=event.event_id, status=event.status.value)
        if now >= event.start_time:
            raise StakingClosed(event_id=event.event_id, start_time=event.start_time, now=now)
        if (event.event_id, participant) in self._stakes:
            raise DuplicateStake(event_id=event.event_id, participant=participant)

    def record_stake(
        self,
        event: Event,
        participant: str,
        outcome: Outcome,
        amount: int,
        now: int,
        config: LedgerConfig,
    ) -> Stake:
        self.check_stake(event, participant, outcome, amount, now, config)
        stake = Stake(
            event_id=event.event_id,
            participant=participant,
            amount=amount,
            outcome=outcome,
            placed_at=now,
        )
        if outcome == Outcome.HOME:
            event.home_pool += amount
            event.home_count += 1
        elif outcome == Outcome.DRAW:
            event.draw_pool += amount
            event.draw_count += 1
        else:
            event.away_pool += amount
            event.away_count += 1
        event.total_pool += amount
        self._stakes[(event.event_id, participant)] = stake
        self._stakers[event.event_id].append(participant)
        return stake

    def mark_claimed(self, stake: Stake, payout: int, now: int) -> None:
        stake.claimed = True
        stake.payout = payout
        stake.claimed_at = now
        self.get_event(stake.event_id).total_claimed += payout

    def restore_stake(self, stake: Stake) -> None:
        """Re-insert a persisted stake without touching pools (they are persisted on the event)."""
        key = (stake.event_id, stake.participant)
        if key in self._stakes:
            raise DuplicateStake(event_id=stake.event_id, participant=stake.participant)
        self.get_event(stake.event_id)
        self._stakes[key] = stake
        self._stakers[stake.event_id].append(stake.participant)
