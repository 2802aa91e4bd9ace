"""Ledger configuration value object and its hard bounds."""

from __future__ import annotations

from dataclasses import dataclass, replace

from poolbet.ledger.errors import InvalidBatchSize, InvalidFeeRate, InvalidGracePeriod, InvalidStakeLimits

BPS_DENOMINATOR = 10_000
MAX_FEE_BPS = 500  # 5%
MIN_GRACE_PERIOD_SEC = 6300  # 105 minutes after start
MAX_BATCH_SIZE_CEILING = 200


@dataclass(frozen=True)
class LedgerConfig:
    """Stake limits, fee rate, grace period, batch bound. Immutable; updates return a new instance."""

    min_stake: int = 1_000
    max_stake: int = 10_000_000_000
    fee_bps: int = 100
    grace_period_sec: int = MIN_GRACE_PERIOD_SEC
    max_batch_size: int = 50

    def validated(self) -> LedgerConfig:
        check_stake_limits(self.min_stake, self.max_stake)
        check_fee_rate(self.fee_bps)
        check_grace_period(self.grace_period_sec)
        if not 0 < self.max_batch_size <= MAX_BATCH_SIZE_CEILING:
            raise InvalidBatchSize(
                f"max_batch_size must be in (0, {MAX_BATCH_SIZE_CEILING}]", max_batch_size=self.max_batch_size
            )
        return self

    def with_stake_limits(self, min_stake: int, max_stake: int) -> LedgerConfig:
        check_stake_limits(min_stake, max_stake)
        return replace(self, min_stake=min_stake, max_stake=max_stake)

    def with_fee_rate(self, fee_bps: int) -> LedgerConfig:
        check_fee_rate(fee_bps)
        return replace(self, fee_bps=fee_bps)

    def with_grace_period(self, grace_period_sec: int) -> LedgerConfig:
        check_grace_period(grace_period_sec)
        return replace(self, grace_period_sec=grace_period_sec)


def check_stake_limits(min_stake: int, max_stake: int) -> None:
    if min_stake <= 0 or max_stake <= min_stake:
        raise InvalidStakeLimits(
            "stake limits require 0 < min < max", min_stake=min_stake, max_stake=max_stake
        )


def check_fee_rate(fee_bps: int) -> None:
    if fee_bps < 0 or fee_bps > MAX_FEE_BPS:
        raise InvalidFeeRate(f"fee rate must be in [0, {MAX_FEE_BPS}] bps", fee_bps=fee_bps)


def check_grace_period(grace_period_sec: int) -> None:
    if grace_period_sec < MIN_GRACE_PERIOD_SEC:
        raise InvalidGracePeriod(
            f"grace period must be at least {MIN_GRACE_PERIOD_SEC}s", grace_period_sec=grace_period_sec
        )
