"""Instructor certification and referral edges."""

from datetime import datetime
from typing import Optional

from .errors import (
    BatchSizeExceeded,
    InvalidAddress,
    ReferrerAlreadySet,
    SelfReferral,
)
from .models import ZERO_ADDRESS, EventName
from .storage import MarketplaceStorage


def require_address(address: Optional[str]) -> str:
    if not address or not address.strip() or address == ZERO_ADDRESS:
        raise InvalidAddress(f"Invalid address {address!r}")
    return address


def is_authorized(storage: MarketplaceStorage, instructor: str) -> bool:
    return instructor in storage.certified_instructors


def certify(storage: MarketplaceStorage, instructor: str, now: datetime) -> bool:
    require_address(instructor)
    if instructor in storage.certified_instructors:
        return False
    storage.certified_instructors[instructor] = now
    storage.emit(EventName.INSTRUCTOR_CERTIFIED, now, instructor=instructor)
    return True


def batch_certify(storage: MarketplaceStorage, instructors: list[str], max_batch_size: int, now: datetime) -> list[str]:
    if len(instructors) > max_batch_size:
        raise BatchSizeExceeded(f"Batch of {len(instructors)} exceeds limit of {max_batch_size}")
    for instructor in instructors:
        require_address(instructor)
    return [i for i in instructors if certify(storage, i, now)]


def revoke(storage: MarketplaceStorage, instructor: str, now: datetime) -> bool:
    if storage.certified_instructors.pop(instructor, None) is None:
        return False
    storage.emit(EventName.INSTRUCTOR_REVOKED, now, instructor=instructor)
    return True


def set_referrer(storage: MarketplaceStorage, buyer: str, referrer: str, now: datetime) -> None:
    require_address(buyer)
    require_address(referrer)
    if referrer == buyer:
        raise SelfReferral("An account cannot refer itself")
    if buyer in storage.referrers:
        raise ReferrerAlreadySet(f"Referrer for {buyer} is already set")

    storage.referrers[buyer] = referrer
    storage.emit(EventName.REFERRER_SET, now, buyer=buyer, referrer=referrer)
