"""Ledger-wide and per-participant aggregates (informational, not authoritative)."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class GlobalStats:
    total_events: int = 0
    active_events: int = 0
    resolved_events: int = 0
    cancelled_events: int = 0
    total_stakes: int = 0
    total_volume: int = 0
    total_fees_collected: int = 0
    dust_retained: int = 0
    fee_balance: int = 0  # fees + dust not yet withdrawn
    total_fees_withdrawn: int = 0
    total_paid_out: int = 0
    unique_participants: int = 0
    total_batch_resolutions: int = 0
    total_batch_cancellations: int = 0
    total_skipped_resolutions: int = 0
    total_skipped_cancellations: int = 0


@dataclass
class ParticipantStats:
    participant: str
    total_stakes: int = 0
    total_wagered: int = 0
    total_won: int = 0
    total_claimed: int = 0
    total_profit: int = 0
    win_count: int = 0
    refund_count: int = 0
    first_stake_at: int | None = None
    last_activity_at: int | None = None
