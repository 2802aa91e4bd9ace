"""Platform fee: pure function of pool total and basis-point rate."""

from __future__ import annotations

from poolbet.ledger.config import BPS_DENOMINATOR, check_fee_rate
from poolbet.ledger.errors import InvalidAmount


class FeePolicy:
    """Computes the fee on a pool. Whether a fee applies at all is decided by settlement."""

    @staticmethod
    def compute_fee(total: int, rate_bps: int) -> int:
        """total * rate_bps / 10000, truncated. Rate must be within the ceiling."""
        if total < 0:
            raise InvalidAmount("pool total cannot be negative", total=total)
        check_fee_rate(rate_bps)
        return total * rate_bps // BPS_DENOMINATOR
