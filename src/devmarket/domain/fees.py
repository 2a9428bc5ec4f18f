"""Marketplace fee arithmetic.

All amounts are integers in minor currency units. Rates are Decimals so the
products are exact before rounding; rounding is half-up, matching how the
checkout flow has always rounded platform fees.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from devmarket.domain.exceptions import InvalidInputError

VERIFICATION_LEVELS = (0, 1, 2, 3)
AUTOMATED_LEVEL = 0

DEFAULT_VERIFICATION_FEES: dict[int, int] = {0: 0, 1: 50, 2: 150, 3: 500}
DEFAULT_VERIFIER_SHARE_RATE = Decimal("0.70")
DEFAULT_PLATFORM_FEE_RATE = Decimal("0.15")
DEFAULT_VERIFIED_PLATFORM_FEE_RATE = Decimal("0.12")
DEFAULT_VERIFIED_SELLER_MIN_LEVEL = 2


@dataclass(frozen=True)
class FeeSplit:
    """How a verification fee is divided between verifier and platform."""

    fee: int
    verifier_share: int
    platform_share: int


def round_half_up(value: Decimal) -> int:
    """Round a Decimal to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def verification_fee(level: int, fee_table: dict[int, int] | None = None) -> int:
    """Return the fixed fee for a verification level."""
    if level not in VERIFICATION_LEVELS:
        raise InvalidInputError(
            f"verification level must be one of {VERIFICATION_LEVELS}, got {level}",
            field="level",
        )
    if level == AUTOMATED_LEVEL:
        return 0
    table = fee_table if fee_table is not None else DEFAULT_VERIFICATION_FEES
    return table[level]


def split_verification_fee(
    fee: int,
    verifier_share_rate: Decimal = DEFAULT_VERIFIER_SHARE_RATE,
) -> FeeSplit:
    """Split a fee: verifier gets round(fee * rate), platform keeps the rest."""
    if fee < 0:
        raise InvalidInputError("fee must not be negative", field="fee")
    verifier_share = round_half_up(Decimal(fee) * verifier_share_rate)
    return FeeSplit(
        fee=fee,
        verifier_share=verifier_share,
        platform_share=fee - verifier_share,
    )


def platform_fee_rate(
    seller_verification_level: int,
    standard_rate: Decimal = DEFAULT_PLATFORM_FEE_RATE,
    verified_rate: Decimal = DEFAULT_VERIFIED_PLATFORM_FEE_RATE,
    verified_min_level: int = DEFAULT_VERIFIED_SELLER_MIN_LEVEL,
) -> Decimal:
    """Fee rate charged on a sale; verified sellers get the discounted rate."""
    if seller_verification_level >= verified_min_level:
        return verified_rate
    return standard_rate


def order_platform_fee(amount: int, rate: Decimal) -> int:
    """Platform fee for a single order, fixed at the moment the order is captured."""
    if amount < 0:
        raise InvalidInputError("order amount must not be negative", field="amount")
    return round_half_up(Decimal(amount) * rate)


def payout_amount(total_amount: int, platform_fee: int, verification_earnings: int) -> int:
    """Net amount owed to a seller for a settlement period."""
    return total_amount - platform_fee + verification_earnings
