"""Progressive withholding tax on partner payments.

Rates are expressed in basis points of a ten-thousandth so the computation
stays in integers:

    amount <= 1,000,000:  floor(amount * 0.1021)
    amount >  1,000,000:  floor(1,000,000 * 0.1021 + (amount - 1,000,000) * 0.2042)
"""

from __future__ import annotations

WITHHOLDING_THRESHOLD = 1_000_000
BASE_RATE_PER_10K = 1021
EXCESS_RATE_PER_10K = 2042
_RATE_DENOMINATOR = 10_000


def compute_withholding(amount: int) -> int:
    """Compute the withholding deduction for a gross amount.

    Non-positive amounts withhold nothing.
    """
    if amount <= 0:
        return 0
    if amount <= WITHHOLDING_THRESHOLD:
        return amount * BASE_RATE_PER_10K // _RATE_DENOMINATOR
    scaled = (
        WITHHOLDING_THRESHOLD * BASE_RATE_PER_10K
        + (amount - WITHHOLDING_THRESHOLD) * EXCESS_RATE_PER_10K
    )
    return scaled // _RATE_DENOMINATOR


def compute_net_amount(total_amount: int, withholding_tax: int) -> int:
    """Net payable after withholding. May be negative; callers reject that."""
    return total_amount - withholding_tax


def default_tax(amount: int, rate_percent: int = 10) -> int:
    """Advisory consumption tax suggested when the client omits one."""
    return amount * rate_percent // 100
