"""MatchStateMachine - event lifecycle: OPEN -> CLOSED -> RESOLVED, OPEN/CLOSED -> CANCELLED.

Single-item operations are strict and raise. Batch operations evaluate each entry against the
state as of its turn and record a SkipReason instead of raising on state conflicts, so a
scheduler can retry a partially applied batch until it converges.
"""

from __future__ import annotations

from itertools import count
from threading import Lock
from typing import Any, Callable, Sequence

import pydantic
import structlog

from poolbet.ledger.aggregates import StatsBook
from poolbet.ledger.config import LedgerConfig
from poolbet.ledger.errors import (
    AlreadyCancelled,
    AlreadyResolved,
    BatchTooLarge,
    EmptyBatch,
    EventNotFound,
    EventNotOpen,
    InvalidMetadata,
    InvalidOutcome,
    InvalidStartTime,
    LedgerError,
    LengthMismatch,
    TooEarly,
)
from poolbet.ledger.locks import EventLocks
from poolbet.ledger.notifications import Notifier
from poolbet.ledger.pool import PoolLedger
from poolbet.ledger.settlement import SettlementBasis, SettlementEngine
from poolbet.models.event import Event, EventMeta, EventStatus, Outcome
from poolbet.models.notification import NotificationKind
from poolbet.models.results import BatchEntry, BatchResult, SkipReason

log = structlog.get_logger(__name__)

MAX_REASON_LENGTH = 256

_RESOLVE_ERRORS: dict[SkipReason, type[LedgerError]] = {
    SkipReason.MATCH_NOT_FOUND: EventNotFound,
    SkipReason.ALREADY_RESOLVED_SAME_RESULT: AlreadyResolved,
    SkipReason.ALREADY_RESOLVED_DIFFERENT_RESULT: AlreadyResolved,
    SkipReason.ALREADY_CANCELLED: AlreadyCancelled,
    SkipReason.INVALID_OUTCOME: InvalidOutcome,
    SkipReason.KICKOFF_NOT_REACHED: TooEarly,
}

_CANCEL_ERRORS: dict[SkipReason, type[LedgerError]] = {
    SkipReason.MATCH_NOT_FOUND: EventNotFound,
    SkipReason.MATCH_IS_RESOLVED: AlreadyResolved,
    SkipReason.ALREADY_CANCELLED: AlreadyCancelled,
}


def coerce_outcome(value: Any) -> Outcome | None:
    """Outcome for an int/str/enum input, or None when it is not a known outcome."""
    if isinstance(value, Outcome):
        return value
    if isinstance(value, str):
        return Outcome.__members__.get(value.strip().upper())
    # bool is an int subclass; floats are never truncated
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    try:
        return Outcome(value)
    except ValueError:
        return None


def check_batch(size: int, config: LedgerConfig) -> None:
    if size == 0:
        raise EmptyBatch()
    if size > config.max_batch_size:
        raise BatchTooLarge(size=size, max_batch_size=config.max_batch_size)


class MatchStateMachine:
    def __init__(
        self,
        pool: PoolLedger,
        settlement: SettlementEngine,
        locks: EventLocks,
        notifier: Notifier,
        stats: StatsBook,
        config: Callable[[], LedgerConfig],
    ) -> None:
        self.pool = pool
        self.settlement = settlement
        self.locks = locks
        self.notifier = notifier
        self.stats = stats
        self._config = config
        self._ids = count(1)
        self.creation_lock = Lock()

    # --- creation / closing ---

    def create_event(self, meta: EventMeta | dict[str, Any], start_time: int, now: int) -> Event:
        if not isinstance(meta, EventMeta):
            try:
                meta = EventMeta.model_validate(meta)
            except pydantic.ValidationError as exc:
                raise InvalidMetadata(str(exc)) from exc
        if isinstance(start_time, bool) or not isinstance(start_time, int) or start_time <= now:
            raise InvalidStartTime(start_time=start_time, now=now)
        with self.creation_lock:
            event = Event(
                event_id=next(self._ids),
                home_team=meta.home_team,
                away_team=meta.away_team,
                competition=meta.competition,
                start_time=start_time,
                created_at=now,
            )
            self.pool.add_event(event)
            self.stats.event_created()
        self.notifier.emit(
            NotificationKind.EVENT_CREATED,
            now,
            event_id=event.event_id,
            home_team=event.home_team,
            away_team=event.away_team,
            competition=event.competition,
            start_time=start_time,
        )
        return event

    def restore_ids(self, next_id: int) -> None:
        """Continue id assignment after `next_id - 1` (used when reloading a ledger)."""
        with self.creation_lock:
            self._ids = count(next_id)

    def _close(self, event: Event, now: int, implicit: bool) -> None:
        event.status = EventStatus.CLOSED
        event.closed_at = now
        self.notifier.emit(
            NotificationKind.EVENT_CLOSED,
            now,
            event_id=event.event_id,
            total_pool=event.total_pool,
            implicit=implicit,
        )

    def close(self, event_id: int, now: int) -> Event:
        with self.locks.hold([event_id]):
            event = self.pool.get_event(event_id)
            if event.status != EventStatus.OPEN:
                raise EventNotOpen(event_id=event_id, status=event.status.value)
            self._close(event, now, implicit=False)
            return event

    def close_expired(self, now: int) -> list[int]:
        """Close every OPEN event whose start time has passed."""
        closed: list[int] = []
        for candidate in self.pool.events():
            if candidate.status != EventStatus.OPEN or now < candidate.start_time:
                continue
            with self.locks.hold([candidate.event_id]):
                # re-check under the lock
                if candidate.status == EventStatus.OPEN:
                    self._close(candidate, now, implicit=True)
                    closed.append(candidate.event_id)
        return closed

    # --- resolution ---

    def resolution_block(self, event_id: int, outcome: Outcome | None, now: int) -> SkipReason | None:
        """Reason this entry cannot be resolved right now, or None. Caller holds the lock."""
        event = self.pool.find_event(event_id)
        if event is None:
            return SkipReason.MATCH_NOT_FOUND
        if event.status == EventStatus.RESOLVED:
            if outcome == event.result:
                return SkipReason.ALREADY_RESOLVED_SAME_RESULT
            return SkipReason.ALREADY_RESOLVED_DIFFERENT_RESULT
        if event.status == EventStatus.CANCELLED:
            return SkipReason.ALREADY_CANCELLED
        if outcome is None or outcome == Outcome.NONE:
            return SkipReason.INVALID_OUTCOME
        if now < event.start_time + self._config().grace_period_sec:
            return SkipReason.KICKOFF_NOT_REACHED
        return None

    def _apply_resolution(self, event: Event, outcome: Outcome, now: int) -> SettlementBasis:
        if event.status == EventStatus.OPEN:
            self._close(event, now, implicit=True)
        basis = self.settlement.settle(event, outcome, self._config().fee_bps)
        event.status = EventStatus.RESOLVED
        event.resolved_at = now
        self.stats.event_resolved(basis.fee, event.dust_amount)
        self.notifier.emit(
            NotificationKind.EVENT_RESOLVED,
            now,
            event_id=event.event_id,
            result=outcome.name,
            settlement=basis.kind.value,
            total_pool=basis.total,
            winner_pool=basis.winner_pool,
            fee=basis.fee,
            dust=event.dust_amount,
        )
        return basis

    def resolve(self, event_id: int, outcome: Any, now: int) -> SettlementBasis:
        resolved = coerce_outcome(outcome)
        with self.locks.hold([event_id]):
            reason = self.resolution_block(event_id, resolved, now)
            if reason is not None:
                raise _RESOLVE_ERRORS[reason](event_id=event_id, reason=reason.value)
            return self._apply_resolution(self.pool.get_event(event_id), resolved, now)

    def resolve_many(self, event_ids: Sequence[int], outcomes: Sequence[Any], now: int) -> BatchResult:
        if len(event_ids) != len(outcomes):
            raise LengthMismatch(event_ids=len(event_ids), outcomes=len(outcomes))
        check_batch(len(event_ids), self._config())
        result = BatchResult()
        with self.locks.hold(event_ids):
            for position, (event_id, raw) in enumerate(zip(event_ids, outcomes)):
                outcome = coerce_outcome(raw)
                reason = self.resolution_block(event_id, outcome, now)
                if reason is None:
                    self._apply_resolution(self.pool.get_event(event_id), outcome, now)
                    result.entries.append(BatchEntry(event_id=event_id, applied=True))
                    continue
                result.entries.append(BatchEntry(event_id=event_id, applied=False, reason=reason))
                self.notifier.emit(
                    NotificationKind.RESOLUTION_SKIPPED,
                    now,
                    event_id=event_id,
                    reason=reason.value,
                    requested_result=outcome.name if outcome is not None else str(raw),
                    position=position,
                )
        self.stats.batch_resolution(result.skipped_count)
        self.notifier.emit(
            NotificationKind.BATCH_RESOLVED,
            now,
            resolved_count=result.applied_count,
            skipped_count=result.skipped_count,
            event_ids=list(event_ids),
        )
        return result

    # --- cancellation ---

    def cancellation_block(self, event_id: int) -> SkipReason | None:
        event = self.pool.find_event(event_id)
        if event is None:
            return SkipReason.MATCH_NOT_FOUND
        if event.status == EventStatus.RESOLVED:
            return SkipReason.MATCH_IS_RESOLVED
        if event.status == EventStatus.CANCELLED:
            return SkipReason.ALREADY_CANCELLED
        return None

    def _apply_cancellation(self, event: Event, reason: str, now: int) -> None:
        event.status = EventStatus.CANCELLED
        event.cancelled_at = now
        event.cancellation_reason = reason
        self.stats.event_cancelled()
        self.notifier.emit(
            NotificationKind.EVENT_CANCELLED,
            now,
            event_id=event.event_id,
            reason=reason,
            total_pool=event.total_pool,
        )

    @staticmethod
    def _check_reason(reason: str) -> None:
        if len(reason) > MAX_REASON_LENGTH:
            raise InvalidMetadata("cancellation reason too long", length=len(reason))

    def cancel(self, event_id: int, reason: str, now: int) -> Event:
        self._check_reason(reason)
        with self.locks.hold([event_id]):
            block = self.cancellation_block(event_id)
            if block is not None:
                raise _CANCEL_ERRORS[block](event_id=event_id, reason=block.value)
            event = self.pool.get_event(event_id)
            self._apply_cancellation(event, reason, now)
            return event

    def cancel_many(self, event_ids: Sequence[int], reason: str, now: int) -> BatchResult:
        self._check_reason(reason)
        check_batch(len(event_ids), self._config())
        result = BatchResult()
        with self.locks.hold(event_ids):
            for position, event_id in enumerate(event_ids):
                block = self.cancellation_block(event_id)
                if block is None:
                    self._apply_cancellation(self.pool.get_event(event_id), reason, now)
                    result.entries.append(BatchEntry(event_id=event_id, applied=True))
                    continue
                result.entries.append(BatchEntry(event_id=event_id, applied=False, reason=block))
                self.notifier.emit(
                    NotificationKind.CANCELLATION_SKIPPED,
                    now,
                    event_id=event_id,
                    reason=block.value,
                    position=position,
                )
        self.stats.batch_cancellation(result.skipped_count)
        self.notifier.emit(
            NotificationKind.BATCH_CANCELLED,
            now,
            cancelled_count=result.applied_count,
            skipped_count=result.skipped_count,
            event_ids=list(event_ids),
        )
        return result
