import logging
from datetime import datetime

from . import earnings
from .config import Settings
from .errors import CooldownActive, InsufficientEarnings
from .models import EarningsAccount, EventName
from .registry import require_address
from .storage import MarketplaceStorage
from .token import TokenLedger, require_transfer

logger = logging.getLogger(__name__)


def withdraw(
    storage: MarketplaceStorage,
    token: TokenLedger,
    settings: Settings,
    seller: str,
    now: datetime,
) -> tuple[int, EarningsAccount]:
    require_address(seller)
    account = storage.earnings_account(seller)
    if account.pending == 0 or account.pending < settings.min_withdrawal:
        raise InsufficientEarnings(
            f"Pending {account.pending} below minimum withdrawal {settings.min_withdrawal}"
        )
    if account.last_withdrawal_at is not None:
        available_at = account.last_withdrawal_at + settings.withdrawal_cooldown
        if now < available_at:
            raise CooldownActive(f"Next withdrawal available at {available_at.isoformat()}")

    amount = earnings.drain(storage, seller, now)
    storage.emit(EventName.WITHDRAWAL, now, seller=seller, amount=amount, withdrawn=account.withdrawn)

    require_transfer(token.transfer(seller, amount), f"escrow -> {seller} withdrawal {amount}")

    logger.info("%s withdrew %s", seller, amount)
    return amount, account
