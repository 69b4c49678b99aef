"""
Course Escrow Marketplace

This package provides:
- Zero-loss fee distribution between seller, platform and referrer
- Per-seller earnings ledger with deferred payout
- Refund state machine gated by hold time, window and progress
- Rate-limited withdrawals
- Reentrancy guard, emergency pause and all-or-nothing transactions
"""

from .config import Settings, get_settings
from .errors import MarketplaceError, PreconditionError
from .fees import distribute
from .models import (
    Course,
    Distribution,
    EarningsAccount,
    Event,
    EventName,
    FeeConfig,
    Progress,
    PurchaseRecord,
    RefundRequest,
    RefundState,
)
from .service import MarketplaceService
from .token import InMemoryToken, TokenLedger

__all__ = [
    "Settings",
    "get_settings",
    "MarketplaceError",
    "PreconditionError",
    "distribute",
    "Course",
    "Distribution",
    "EarningsAccount",
    "Event",
    "EventName",
    "FeeConfig",
    "Progress",
    "PurchaseRecord",
    "RefundRequest",
    "RefundState",
    "MarketplaceService",
    "InMemoryToken",
    "TokenLedger",
]
