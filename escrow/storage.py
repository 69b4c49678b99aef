import copy
import logging
from datetime import datetime
from typing import Any

from .models import (
    Course,
    EarningsAccount,
    Event,
    EventName,
    FeeConfig,
    Progress,
    PurchaseRecord,
    ReferralEarnings,
    RefundRequest,
)

logger = logging.getLogger(__name__)


class MarketplaceStorage:
    """Single owner of every ledger map. Engines receive it, never copy it."""

    def __init__(self, fee_config: FeeConfig):
        self.fee_config: FeeConfig = fee_config
        self.paused: bool = False

        self.courses: dict[int, Course] = {}
        self.next_course_id: int = 1
        self.instructor_courses: dict[str, list[int]] = {}

        self.purchases: dict[tuple[str, int], PurchaseRecord] = {}
        self.student_courses: dict[str, list[int]] = {}
        self.course_students: dict[int, list[str]] = {}
        self.progress: dict[tuple[str, int], Progress] = {}

        self.earnings: dict[str, EarningsAccount] = {}
        self.referral_earnings: dict[str, ReferralEarnings] = {}
        self.referrers: dict[str, str] = {}

        self.refund_requests: dict[int, RefundRequest] = {}
        self.next_refund_id: int = 1

        self.certified_instructors: dict[str, datetime] = {}
        self.events: list[Event] = []

    def snapshot(self) -> dict[str, Any]:
        """Copy every map except the append-only event log, which is kept by length."""
        state = {k: copy.deepcopy(v) for k, v in vars(self).items() if k != "events"}
        state["events"] = len(self.events)
        return state

    def restore(self, state: dict[str, Any]) -> None:
        events = self.events
        del events[state["events"]:]
        vars(self).clear()
        vars(self).update({k: v for k, v in state.items() if k != "events"})
        self.events = events

    def earnings_account(self, seller: str) -> EarningsAccount:
        account = self.earnings.get(seller)
        if account is None:
            account = EarningsAccount(seller=seller)
            self.earnings[seller] = account
        return account

    def referral_account(self, referrer: str) -> ReferralEarnings:
        account = self.referral_earnings.get(referrer)
        if account is None:
            account = ReferralEarnings(referrer=referrer)
            self.referral_earnings[referrer] = account
        return account

    def total_pending(self) -> int:
        return sum(a.pending for a in self.earnings.values())

    def emit(self, name: EventName, timestamp: datetime, **data: Any) -> Event:
        event = Event(name=name, sequence=len(self.events) + 1, timestamp=timestamp, data=data)
        self.events.append(event)
        logger.debug("event %s %s", name.value, data)
        return event
