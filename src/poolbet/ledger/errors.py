"""Ledger error taxonomy. Every error carries a stable machine-readable code."""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base for all ledger failures."""

    code = "ledger_error"

    def __init__(self, message: str | None = None, **context: Any) -> None:
        super().__init__(message or self.code)
        self.context = context


# --- Input validation: aborts before any state change ---
class InputError(LedgerError):
    code = "invalid_input"


class InvalidOutcome(InputError):
    code = "invalid_outcome"


class StakeOutOfBounds(InputError):
    code = "stake_out_of_bounds"


class InvalidMetadata(InputError):
    code = "invalid_metadata"


class EmptyBatch(InputError):
    code = "empty_batch"


class BatchTooLarge(InputError):
    code = "batch_too_large"


class LengthMismatch(InputError):
    code = "length_mismatch"


class InvalidStartTime(InputError):
    code = "invalid_start_time"


class InvalidAmount(InputError):
    code = "invalid_amount"


# --- State conflicts: raised by single-item calls, skipped by batches ---
class StateError(LedgerError):
    code = "state_conflict"


class EventNotFound(StateError):
    code = "event_not_found"


class EventNotOpen(StateError):
    code = "event_not_open"


class StakingClosed(StateError):
    code = "staking_closed"


class DuplicateStake(StateError):
    code = "duplicate_stake"


class AlreadyResolved(StateError):
    code = "already_resolved"


class AlreadyCancelled(StateError):
    code = "already_cancelled"


class TooEarly(StateError):
    code = "too_early"


class NotResolved(StateError):
    code = "not_resolved"


class NoStake(StateError):
    code = "no_stake"


class AlreadyClaimed(StateError):
    code = "already_claimed"


class NotAWinner(StateError):
    code = "not_a_winner"


class NothingToClaim(StateError):
    code = "nothing_to_claim"


class InsufficientFeeBalance(StateError):
    code = "insufficient_fee_balance"


# --- Custody: external value movement failed, ledger mutation rolled back ---
class TransferError(LedgerError):
    code = "transfer_failed"


# --- Policy/config: rejected at configuration time, never clamped ---
class ConfigError(LedgerError):
    code = "invalid_config"


class InvalidFeeRate(ConfigError):
    code = "invalid_fee_rate"


class InvalidStakeLimits(ConfigError):
    code = "invalid_stake_limits"


class InvalidGracePeriod(ConfigError):
    code = "invalid_grace_period"


class InvalidBatchSize(ConfigError):
    code = "invalid_batch_size"
