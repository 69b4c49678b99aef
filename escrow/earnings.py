"""
Earnings ledger.

Per-seller running totals. ``total_earned == withdrawn + pending`` holds after
every mutation here; anything that would break it is an ``InvariantViolation``.
"""

import logging
from datetime import datetime

from .errors import InsufficientEarnings, InvariantViolation
from .models import EarningsAccount, EventName
from .storage import MarketplaceStorage

logger = logging.getLogger(__name__)


def _check_balanced(account: EarningsAccount) -> None:
    if not account.is_balanced():
        raise InvariantViolation(
            f"Earnings for {account.seller} out of balance: earned={account.total_earned} "
            f"withdrawn={account.withdrawn} pending={account.pending}"
        )


def credit(storage: MarketplaceStorage, seller: str, amount: int, now: datetime) -> EarningsAccount:
    if amount < 0:
        raise InvariantViolation(f"Cannot credit negative amount {amount}")
    account = storage.earnings_account(seller)
    account.total_earned += amount
    account.pending += amount
    _check_balanced(account)
    storage.emit(
        EventName.EARNINGS_UPDATED, now,
        seller=seller, delta=amount, total_earned=account.total_earned, pending=account.pending,
    )
    return account


def clawback(storage: MarketplaceStorage, seller: str, amount: int, now: datetime) -> EarningsAccount:
    account = storage.earnings_account(seller)
    if account.pending < amount:
        raise InsufficientEarnings(
            f"Seller {seller} has {account.pending} pending, clawback needs {amount}"
        )
    account.pending -= amount
    account.total_earned -= amount
    _check_balanced(account)
    storage.emit(
        EventName.EARNINGS_UPDATED, now,
        seller=seller, delta=-amount, total_earned=account.total_earned, pending=account.pending,
    )
    return account


def drain(storage: MarketplaceStorage, seller: str, now: datetime) -> int:
    account = storage.earnings_account(seller)
    amount = account.pending
    account.withdrawn += amount
    account.pending = 0
    account.withdrawal_history.append(now)
    account.last_withdrawal_at = now
    _check_balanced(account)
    storage.emit(
        EventName.EARNINGS_UPDATED, now,
        seller=seller, delta=-amount, total_earned=account.total_earned, pending=account.pending,
    )
    return amount


def reward_referrer(storage: MarketplaceStorage, referrer: str, amount: int) -> None:
    account = storage.referral_account(referrer)
    account.total_rewarded += amount
    account.reward_count += 1


def reduce_referral_reward(storage: MarketplaceStorage, referrer: str, amount: int) -> int:
    account = storage.referral_account(referrer)
    reduced = min(amount, account.total_rewarded)
    account.total_rewarded -= reduced
    return reduced
