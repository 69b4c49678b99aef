import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from . import catalog, progress, purchase, refund, registry, withdrawal
from .config import Settings, get_settings
from .errors import (
    CourseNotFound,
    InvalidAddress,
    NotPurchased,
    Unauthorized,
)
from .fees import validate_fee_config
from .guard import ReentrancyGuard, require_not_paused, require_paused
from .models import (
    Course,
    EarningsAccount,
    Event,
    EventHistoryResponse,
    EventName,
    FeeConfig,
    HealthReport,
    Progress,
    PurchaseRecord,
    PurchaseResponse,
    ReferralEarnings,
    RefundRequest,
    RefundResponse,
    RefundStatus,
    WithdrawalResponse,
)
from .storage import MarketplaceStorage
from .token import TokenLedger

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MarketplaceService:
    """The marketplace contract: owns the store, guards and commits every mutation.

    Each state-changing method runs inside the reentrancy guard and an atomic
    transaction. Store and token are checkpointed on entry and both are
    restored if anything raises, so a call either fully happens or leaves no
    trace.
    """

    def __init__(
        self,
        token: TokenLedger,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        storage: Optional[MarketplaceStorage] = None,
    ):
        self.settings = settings or get_settings()
        self.token = token
        self.clock = clock or utc_now
        self.platform = self.settings.platform_address
        self.escrow = self.settings.escrow_address
        self.storage = storage or MarketplaceStorage(FeeConfig(
            seller_rate=self.settings.seller_rate,
            platform_rate=self.settings.platform_rate,
            referrer_rate=self.settings.referrer_rate,
        ))
        self.guard = ReentrancyGuard()

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[datetime]:
        with self.guard.enter(operation):
            storage_state = self.storage.snapshot()
            token_state = self.token.checkpoint()
            try:
                yield self.clock()
            except Exception as e:
                self.storage.restore(storage_state)
                self.token.revert(token_state)
                logger.warning("%s rolled back: %s: %s", operation, type(e).__name__, e)
                raise

    def _require_admin(self, caller: str) -> None:
        if caller != self.platform:
            raise Unauthorized(f"{caller} is not the platform administrator")

    def _require_actor(self, *addresses: str) -> None:
        if self.escrow in addresses:
            raise InvalidAddress(f"The escrow account {self.escrow} cannot act in the marketplace")

    # Administration

    def pause(self, caller: str) -> None:
        with self._transaction("pause") as now:
            self._require_admin(caller)
            require_not_paused(self.storage)
            self.storage.paused = True
            self.storage.emit(EventName.PAUSED, now, by=caller)
        logger.warning("Marketplace paused by %s", caller)

    def unpause(self, caller: str) -> None:
        with self._transaction("unpause") as now:
            self._require_admin(caller)
            require_paused(self.storage)
            self.storage.paused = False
            self.storage.emit(EventName.UNPAUSED, now, by=caller)
        logger.info("Marketplace unpaused by %s", caller)

    def set_fee_config(self, caller: str, config: FeeConfig) -> FeeConfig:
        with self._transaction("set_fee_config") as now:
            self._require_admin(caller)
            validate_fee_config(config)
            previous = self.storage.fee_config
            self.storage.fee_config = config
            self.storage.emit(
                EventName.FEE_CONFIG_UPDATED, now,
                previous=previous.model_dump(), current=config.model_dump(),
            )
        logger.info("Fee config updated to %s", config.model_dump())
        return config

    def certify_instructor(self, caller: str, instructor: str) -> bool:
        with self._transaction("certify_instructor") as now:
            self._require_admin(caller)
            self._require_actor(instructor)
            return registry.certify(self.storage, instructor, now)

    def batch_certify_instructors(self, caller: str, instructors: list[str]) -> list[str]:
        with self._transaction("batch_certify_instructors") as now:
            self._require_admin(caller)
            self._require_actor(*instructors)
            added = registry.batch_certify(self.storage, instructors, self.settings.max_batch_size, now)
        logger.info("Certified %s of %s instructors", len(added), len(instructors))
        return added

    def revoke_instructor(self, caller: str, instructor: str) -> bool:
        with self._transaction("revoke_instructor") as now:
            self._require_admin(caller)
            return registry.revoke(self.storage, instructor, now)

    # Catalog

    def create_course(self, caller: str, title: str, price: int, total_lessons: int) -> Course:
        with self._transaction("create_course") as now:
            course = catalog.create_course(
                self.storage, caller, title, price, total_lessons, self.settings.max_price, now
            )
        logger.info("Course %s created by %s", course.id, caller)
        return course.model_copy(deep=True)

    def update_course(self, caller: str, course_id: int, title: str, total_lessons: int) -> Course:
        with self._transaction("update_course") as now:
            course = catalog.update_course(self.storage, caller, course_id, title, total_lessons, now)
        return course.model_copy(deep=True)

    def update_price(self, caller: str, course_id: int, price: int) -> Course:
        with self._transaction("update_price") as now:
            course = catalog.update_price(self.storage, caller, course_id, price, self.settings.max_price, now)
        return course.model_copy(deep=True)

    def publish_course(self, caller: str, course_id: int) -> Course:
        with self._transaction("publish_course") as now:
            course = catalog.set_published(self.storage, caller, course_id, True, now)
        return course.model_copy(deep=True)

    def unpublish_course(self, caller: str, course_id: int) -> Course:
        with self._transaction("unpublish_course") as now:
            course = catalog.set_published(self.storage, caller, course_id, False, now)
        return course.model_copy(deep=True)

    def delete_course(self, caller: str, course_id: int) -> Course:
        with self._transaction("delete_course") as now:
            course = catalog.delete_course(self.storage, caller, course_id, now)
        logger.info("Course %s deleted by %s", course_id, caller)
        return course.model_copy(deep=True)

    # Referrals

    def set_referrer(self, buyer: str, referrer: str) -> None:
        with self._transaction("set_referrer") as now:
            self._require_actor(buyer, referrer)
            registry.set_referrer(self.storage, buyer, referrer, now)

    # Settlement

    def purchase(self, buyer: str, course_id: int) -> PurchaseResponse:
        with self._transaction("purchase") as now:
            require_not_paused(self.storage)
            self._require_actor(buyer)
            record, distribution = purchase.purchase(
                self.storage, self.token, self.escrow, self.platform, buyer, course_id, now
            )
        return PurchaseResponse(
            purchase=record.model_copy(deep=True),
            distribution=distribution,
            message="Course purchased successfully",
        )

    def update_progress(self, buyer: str, course_id: int, completed: int) -> Progress:
        with self._transaction("update_progress") as now:
            require_not_paused(self.storage)
            updated = progress.update_progress(self.storage, buyer, course_id, completed, now)
            self.storage.emit(
                EventName.PROGRESS_UPDATED, now,
                buyer=buyer, course_id=course_id, completed=completed, percent=updated.percent,
            )
        return updated.model_copy(deep=True)

    def request_refund(self, buyer: str, course_id: int) -> RefundResponse:
        with self._transaction("request_refund") as now:
            require_not_paused(self.storage)
            request, account = refund.request_refund(
                self.storage, self.token, self.settings, buyer, course_id, now
            )
        return RefundResponse(
            request=request.model_copy(deep=True),
            earnings=account.model_copy(deep=True),
            message="Refund approved",
        )

    def withdraw(self, seller: str) -> WithdrawalResponse:
        with self._transaction("withdraw") as now:
            require_not_paused(self.storage)
            self._require_actor(seller)
            amount, account = withdrawal.withdraw(self.storage, self.token, self.settings, seller, now)
        return WithdrawalResponse(
            amount=amount,
            earnings=account.model_copy(deep=True),
            message="Withdrawal completed",
        )

    # Queries

    def can_refund(self, buyer: str, course_id: int) -> bool:
        return refund.can_refund(self.storage, self.settings, buyer, course_id, self.clock())

    def refund_status(self, buyer: str, course_id: int) -> RefundStatus:
        return refund.refund_status(self.storage, self.settings, buyer, course_id, self.clock())

    def get_course(self, course_id: int) -> Course:
        course = self.storage.courses.get(course_id)
        if course is None:
            raise CourseNotFound(f"Course {course_id} not found")
        return course.model_copy(deep=True)

    def get_instructor_courses(self, instructor: str) -> list[int]:
        return list(self.storage.instructor_courses.get(instructor, []))

    def get_student_courses(self, buyer: str) -> list[int]:
        return list(self.storage.student_courses.get(buyer, []))

    def get_course_students(self, course_id: int) -> list[str]:
        return list(self.storage.course_students.get(course_id, []))

    def has_purchased(self, buyer: str, course_id: int) -> bool:
        record = self.storage.purchases.get((buyer, course_id))
        return record is not None and record.purchased

    def get_purchase(self, buyer: str, course_id: int) -> PurchaseRecord:
        record = self.storage.purchases.get((buyer, course_id))
        if record is None:
            raise NotPurchased(f"{buyer} has not purchased course {course_id}")
        return record.model_copy(deep=True)

    def get_progress(self, buyer: str, course_id: int) -> Progress:
        return progress.get_progress(self.storage, buyer, course_id).model_copy(deep=True)

    def get_earnings(self, seller: str) -> EarningsAccount:
        account = self.storage.earnings.get(seller) or EarningsAccount(seller=seller)
        return account.model_copy(deep=True)

    def get_referral_earnings(self, referrer: str) -> ReferralEarnings:
        account = self.storage.referral_earnings.get(referrer) or ReferralEarnings(referrer=referrer)
        return account.model_copy(deep=True)

    def get_referrer(self, buyer: str) -> Optional[str]:
        return self.storage.referrers.get(buyer)

    def get_refund_request(self, request_id: int) -> Optional[RefundRequest]:
        request = self.storage.refund_requests.get(request_id)
        return request.model_copy(deep=True) if request else None

    def is_certified_instructor(self, instructor: str) -> bool:
        return registry.is_authorized(self.storage, instructor)

    def certified_instructor_count(self) -> int:
        return len(self.storage.certified_instructors)

    @property
    def fee_config(self) -> FeeConfig:
        return self.storage.fee_config

    def is_paused(self) -> bool:
        return self.storage.paused

    def get_events(self, limit: int = 50, offset: int = 0, name: Optional[EventName] = None) -> EventHistoryResponse:
        events: list[Event] = [e for e in self.storage.events if name is None or e.name == name]
        return EventHistoryResponse(
            events=[e.model_copy(deep=True) for e in events[offset:offset + limit]],
            total_count=len(events),
        )

    def health_check(self) -> HealthReport:
        escrow_balance = self.token.balance_of(self.escrow)
        total_pending = self.storage.total_pending()
        report = HealthReport(
            paused=self.storage.paused,
            escrow_balance=escrow_balance,
            total_pending=total_pending,
            solvent=escrow_balance >= total_pending,
            purchases=sum(1 for p in self.storage.purchases.values() if p.purchased),
            refunds=len(self.storage.refund_requests),
            fee_config=self.storage.fee_config,
        )
        if not report.solvent:
            logger.warning("Escrow balance %s below pending earnings %s", escrow_balance, total_pending)
        return report
