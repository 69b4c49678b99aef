"""
Fee distribution.

Splits a course price between seller, platform and (optionally) referrer.
The platform share is always the remainder, so integer floor division never
loses a unit: ``seller + platform + referrer == price``.
"""

from typing import Optional

from .errors import InvalidFeeConfig, InvariantViolation
from .models import Distribution, FeeConfig


def scale(amount: int, percent: int) -> int:
    return amount * percent // 100


def validate_fee_config(config: FeeConfig) -> None:
    if config.total != 100:
        raise InvalidFeeConfig(f"Fee rates must sum to 100, got {config.total}")


def distribute(price: int, referrer: Optional[str], config: FeeConfig) -> Distribution:
    if config.total != 100:
        raise InvariantViolation(f"Fee config out of balance: rates sum to {config.total}")
    if price < 0:
        raise InvariantViolation(f"Cannot distribute negative price {price}")

    if referrer is not None and config.referrals_enabled:
        seller_amount = scale(price, config.seller_rate)
        referrer_amount = scale(price, config.referrer_rate)
    else:
        # unused referral share goes to the seller
        seller_amount = scale(price, config.seller_rate + config.referrer_rate)
        referrer_amount = 0

    platform_amount = price - seller_amount - referrer_amount

    distribution = Distribution(
        seller_amount=seller_amount,
        platform_amount=platform_amount,
        referrer_amount=referrer_amount,
    )
    if distribution.total != price or platform_amount < 0:
        raise InvariantViolation(f"Distribution {distribution} does not conserve price {price}")
    return distribution
