"""
Refund engine.

A refund request moves NOT_REQUESTED -> REQUESTED -> APPROVED within one call;
REQUESTED is never observable from outside. Eligibility is always re-checked
at request time, whatever ``can_refund`` reported earlier.

The seller's clawback is the refund fraction of the seller share frozen in the
purchase record, so a fee-config change between purchase and refund does not
alter it.
"""

import logging
from datetime import datetime
from typing import Optional

from . import earnings
from .config import Settings
from .errors import (
    AlreadyRefunded,
    HoldTimeNotMet,
    NotPurchased,
    ProgressTooHigh,
    RefundWindowExpired,
)
from .fees import scale
from .models import EarningsAccount, EventName, PurchaseRecord, RefundRequest, RefundState, RefundStatus
from .progress import get_progress, is_refund_eligible
from .registry import require_address
from .storage import MarketplaceStorage
from .token import TokenLedger, require_transfer

logger = logging.getLogger(__name__)


def find_request(storage: MarketplaceStorage, buyer: str, course_id: int) -> Optional[RefundRequest]:
    return next(
        (r for r in storage.refund_requests.values() if r.buyer == buyer and r.course_id == course_id),
        None,
    )


def refund_status(storage: MarketplaceStorage, settings: Settings, buyer: str, course_id: int, now: datetime) -> RefundStatus:
    record = storage.purchases.get((buyer, course_id))
    if record is None or not record.purchased:
        return RefundStatus(
            purchased=False, refunded=False, hold_time_met=False, within_window=False,
            progress_percent=0, progress_ok=False, eligible=False,
        )

    progress = get_progress(storage, buyer, course_id)
    hold_time_met = now >= record.purchased_at + settings.min_hold_time
    within_window = now <= record.purchased_at + settings.refund_window
    progress_ok = is_refund_eligible(progress, settings.refund_threshold)
    eligible = not record.refunded and hold_time_met and within_window and progress_ok
    request = find_request(storage, buyer, course_id)

    return RefundStatus(
        purchased=True,
        refunded=record.refunded,
        state=request.state if request else RefundState.NOT_REQUESTED,
        hold_time_met=hold_time_met,
        within_window=within_window,
        progress_percent=progress.percent,
        progress_ok=progress_ok,
        eligible=eligible,
        refund_amount=scale(record.price_paid, settings.refund_fraction) if eligible else 0,
    )


def can_refund(storage: MarketplaceStorage, settings: Settings, buyer: str, course_id: int, now: datetime) -> bool:
    return refund_status(storage, settings, buyer, course_id, now).eligible


def _require_eligible(storage: MarketplaceStorage, settings: Settings, buyer: str, course_id: int, now: datetime) -> PurchaseRecord:
    record = storage.purchases.get((buyer, course_id))
    if record is None or not record.purchased:
        raise NotPurchased(f"{buyer} has not purchased course {course_id}")
    if record.refunded:
        raise AlreadyRefunded(f"Course {course_id} was already refunded to {buyer}")
    if now < record.purchased_at + settings.min_hold_time:
        raise HoldTimeNotMet(f"Refunds open {settings.min_hold_time} after purchase")
    if now > record.purchased_at + settings.refund_window:
        raise RefundWindowExpired(f"Refund window of {settings.refund_window} has closed")
    progress = get_progress(storage, buyer, course_id)
    if not is_refund_eligible(progress, settings.refund_threshold):
        raise ProgressTooHigh(f"Progress {progress.percent}% reached the {settings.refund_threshold}% limit")
    return record


def request_refund(
    storage: MarketplaceStorage,
    token: TokenLedger,
    settings: Settings,
    buyer: str,
    course_id: int,
    now: datetime,
) -> tuple[RefundRequest, EarningsAccount]:
    require_address(buyer)
    record = _require_eligible(storage, settings, buyer, course_id, now)

    amount = scale(record.price_paid, settings.refund_fraction)
    seller_clawback = scale(record.seller_amount, settings.refund_fraction)
    seller = storage.courses[course_id].instructor

    request = RefundRequest(
        id=storage.next_refund_id,
        course_id=course_id,
        buyer=buyer,
        amount=amount,
        seller_clawback=seller_clawback,
        requested_at=now,
    )
    storage.next_refund_id += 1
    storage.emit(EventName.REFUND_REQUESTED, now, request_id=request.id, course_id=course_id, buyer=buyer, amount=amount)

    account = earnings.clawback(storage, seller, seller_clawback, now)
    if record.referrer is not None and record.referrer_amount > 0:
        earnings.reduce_referral_reward(storage, record.referrer, scale(record.referrer_amount, settings.refund_fraction))

    request.processed = True
    request.approved = True
    storage.refund_requests[request.id] = request
    record.refunded = True
    storage.emit(
        EventName.REFUND_PROCESSED, now,
        request_id=request.id, course_id=course_id, buyer=buyer, seller=seller,
        amount=amount, seller_clawback=seller_clawback, approved=True,
    )

    require_transfer(token.transfer(buyer, amount), f"escrow -> {buyer} refund {amount}")

    logger.info("Refunded %s to %s for course %s (clawback %s from %s)", amount, buyer, course_id, seller_clawback, seller)
    return request, account
