"""
Purchase engine.

Checks, then every ledger write, then the token movements. The seller's share
stays in escrow as pending earnings; platform and referrer shares are pushed
out immediately.
"""

import logging
from datetime import datetime

from . import earnings, progress
from .catalog import require_course
from .errors import AlreadyPurchased, CourseNotPublished, InsufficientBalance, SelfPurchase
from .fees import distribute
from .models import Distribution, EventName, PurchaseRecord
from .registry import require_address
from .storage import MarketplaceStorage
from .token import TokenLedger, require_transfer

logger = logging.getLogger(__name__)


def purchase(
    storage: MarketplaceStorage,
    token: TokenLedger,
    escrow: str,
    platform: str,
    buyer: str,
    course_id: int,
    now: datetime,
) -> tuple[PurchaseRecord, Distribution]:
    require_address(buyer)
    course = require_course(storage, course_id)
    key = (buyer, course_id)
    existing = storage.purchases.get(key)
    if existing is not None and existing.purchased:
        raise AlreadyPurchased(f"{buyer} already purchased course {course_id}")
    if buyer == course.instructor:
        raise SelfPurchase("Instructors cannot buy their own course")
    if not course.published:
        raise CourseNotPublished(f"Course {course_id} is not published")
    balance = token.balance_of(buyer)
    if balance < course.price:
        raise InsufficientBalance(f"Balance {balance} below price {course.price}")

    referrer = storage.referrers.get(buyer)
    distribution = distribute(course.price, referrer, storage.fee_config)
    if distribution.referrer_amount == 0:
        referrer = None

    record = PurchaseRecord(
        buyer=buyer,
        course_id=course_id,
        purchased=True,
        price_paid=course.price,
        purchased_at=now,
        seller_amount=distribution.seller_amount,
        platform_amount=distribution.platform_amount,
        referrer_amount=distribution.referrer_amount,
        referrer=referrer,
    )
    storage.purchases[key] = record
    storage.student_courses.setdefault(buyer, []).append(course_id)
    storage.course_students.setdefault(course_id, []).append(buyer)
    progress.init_progress(storage, buyer, course_id, course.total_lessons, now)

    earnings.credit(storage, course.instructor, distribution.seller_amount, now)
    if referrer is not None:
        earnings.reward_referrer(storage, referrer, distribution.referrer_amount)
        storage.emit(
            EventName.REFERRAL_REWARD_PAID, now,
            referrer=referrer, buyer=buyer, course_id=course_id, amount=distribution.referrer_amount,
        )
    storage.emit(
        EventName.PURCHASE_COMPLETED, now,
        course_id=course_id,
        buyer=buyer,
        instructor=course.instructor,
        price=course.price,
        seller_amount=distribution.seller_amount,
        platform_amount=distribution.platform_amount,
        referrer_amount=distribution.referrer_amount,
    )

    require_transfer(token.transfer_from(buyer, escrow, course.price), f"{buyer} -> escrow {course.price}")
    if distribution.platform_amount > 0:
        require_transfer(token.transfer(platform, distribution.platform_amount), f"escrow -> platform {distribution.platform_amount}")
    if referrer is not None:
        require_transfer(token.transfer(referrer, distribution.referrer_amount), f"escrow -> referrer {distribution.referrer_amount}")

    logger.info("Course %s purchased by %s for %s", course_id, buyer, course.price)
    return record, distribution
