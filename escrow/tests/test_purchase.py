"""
Unit Tests for the Purchase Engine

Tests cover:
1. Purchase flow and fund movement
2. Precondition order
3. Referral rewards
4. Atomic rollback on transfer failure
"""

import pytest

from escrow.errors import (
    AlreadyPurchased,
    CourseNotFound,
    CourseNotPublished,
    InsufficientBalance,
    InvalidAddress,
    SelfPurchase,
    TransferFailed,
)
from escrow.models import EventName, FeeConfig
from escrow.tests.factory import (
    ESCROW,
    INSTRUCTOR,
    OTHER_STUDENT,
    PLATFORM,
    REFERRER,
    STUDENT,
    fund,
    open_course,
)


class TestPurchaseFlow:
    """Tests for a successful purchase."""

    def test_purchase_splits_funds(self, market, course):
        """Test the 100 @ 90/10/0 scenario."""
        response = market.service.purchase(STUDENT, course.id)

        assert response.purchase.purchased is True
        assert response.purchase.price_paid == 100
        assert response.distribution.seller_amount == 90
        assert response.distribution.platform_amount == 10

        # Seller share stays in escrow as pending earnings
        earnings = market.service.get_earnings(INSTRUCTOR)
        assert earnings.pending == 90
        assert earnings.total_earned == 90
        assert earnings.withdrawn == 0

        assert market.token.balance_of(PLATFORM) == 10
        assert market.token.balance_of(ESCROW) == 90
        assert market.token.balance_of(STUDENT) == 9_900
        assert market.token.balance_of(INSTRUCTOR) == 0

    def test_purchase_records_indexes_and_progress(self, market, course):
        market.service.purchase(STUDENT, course.id)

        assert market.service.has_purchased(STUDENT, course.id)
        assert market.service.get_student_courses(STUDENT) == [course.id]
        assert market.service.get_course_students(course.id) == [STUDENT]

        progress = market.service.get_progress(STUDENT, course.id)
        assert progress.total == 10
        assert progress.completed == 0
        assert progress.percent == 0

        record = market.service.get_purchase(STUDENT, course.id)
        assert record.purchased_at == market.clock.now
        assert record.refunded is False

    def test_purchase_emits_event(self, market, course):
        market.service.purchase(STUDENT, course.id)

        events = market.service.get_events(name=EventName.PURCHASE_COMPLETED).events
        assert len(events) == 1
        assert events[0].data == {
            "course_id": course.id,
            "buyer": STUDENT,
            "instructor": INSTRUCTOR,
            "price": 100,
            "seller_amount": 90,
            "platform_amount": 10,
            "referrer_amount": 0,
        }

    def test_price_paid_is_frozen(self, market, course):
        """Test that a later price change does not touch the purchase record."""
        market.service.purchase(STUDENT, course.id)
        market.service.update_price(INSTRUCTOR, course.id, 500)

        assert market.service.get_purchase(STUDENT, course.id).price_paid == 100

    def test_returned_records_are_copies(self, market, course):
        response = market.service.purchase(STUDENT, course.id)
        response.purchase.refunded = True

        assert market.service.get_purchase(STUDENT, course.id).refunded is False


class TestPurchasePreconditions:
    """Tests for preconditions and the order they are checked in."""

    def test_unknown_course(self, market, course):
        with pytest.raises(CourseNotFound):
            market.service.purchase(STUDENT, 999)

    def test_cannot_purchase_twice(self, market, course):
        market.service.purchase(STUDENT, course.id)

        with pytest.raises(AlreadyPurchased):
            market.service.purchase(STUDENT, course.id)

        # Only one debit
        assert market.token.balance_of(STUDENT) == 9_900

    def test_already_purchased_checked_before_published(self, market, course):
        market.service.purchase(STUDENT, course.id)
        market.service.unpublish_course(INSTRUCTOR, course.id)

        with pytest.raises(AlreadyPurchased):
            market.service.purchase(STUDENT, course.id)

    def test_self_purchase_checked_before_balance(self, market, course):
        """Test the instructor is rejected as buyer even with no funds."""
        with pytest.raises(SelfPurchase):
            market.service.purchase(INSTRUCTOR, course.id)

    def test_unpublished_checked_before_balance(self, market, course):
        market.service.unpublish_course(INSTRUCTOR, course.id)

        with pytest.raises(CourseNotPublished):
            market.service.purchase(OTHER_STUDENT, course.id)

    def test_insufficient_balance(self, market, course):
        market.token.mint(OTHER_STUDENT, 99)
        market.token.approve(OTHER_STUDENT, ESCROW, 99)

        with pytest.raises(InsufficientBalance):
            market.service.purchase(OTHER_STUDENT, course.id)


class TestReferralPurchase:
    """Tests for purchases by referred buyers."""

    def test_referrer_paid_immediately(self, market, course):
        market.service.set_fee_config(PLATFORM, FeeConfig(seller_rate=80, platform_rate=15, referrer_rate=5))
        market.service.set_referrer(STUDENT, REFERRER)

        response = market.service.purchase(STUDENT, course.id)

        assert response.distribution.referrer_amount == 5
        assert response.purchase.referrer == REFERRER
        assert market.token.balance_of(REFERRER) == 5
        assert market.token.balance_of(PLATFORM) == 15
        assert market.token.balance_of(ESCROW) == 80
        assert market.service.get_earnings(INSTRUCTOR).pending == 80

        rewards = market.service.get_referral_earnings(REFERRER)
        assert rewards.total_rewarded == 5
        assert rewards.reward_count == 1
        assert len(market.service.get_events(name=EventName.REFERRAL_REWARD_PAID).events) == 1

    def test_no_referral_record_when_referrals_disabled(self, market, course):
        market.service.set_referrer(STUDENT, REFERRER)

        response = market.service.purchase(STUDENT, course.id)

        assert response.purchase.referrer is None
        assert market.token.balance_of(REFERRER) == 0
        assert market.service.get_earnings(INSTRUCTOR).pending == 90


class TestPurchaseRollback:
    """Tests that a failed transfer leaves no trace."""

    def test_platform_transfer_failure_rolls_back_everything(self, market, course):
        events_before = market.service.get_events().total_count
        market.token.blocked.add(PLATFORM)

        with pytest.raises(TransferFailed):
            market.service.purchase(STUDENT, course.id)

        # Buyer pull already happened inside the call and must be undone too
        assert market.token.balance_of(STUDENT) == 10_000
        assert market.token.allowance(STUDENT, ESCROW) == 10_000
        assert market.token.balance_of(ESCROW) == 0

        assert not market.service.has_purchased(STUDENT, course.id)
        assert market.service.get_student_courses(STUDENT) == []
        assert market.service.get_course_students(course.id) == []
        assert market.service.get_progress(STUDENT, course.id).total == 0
        assert market.service.get_earnings(INSTRUCTOR).pending == 0
        assert market.service.get_events().total_count == events_before

    def test_missing_allowance_fails_and_allows_retry(self, market, course):
        market.token.mint(OTHER_STUDENT, 1_000)

        with pytest.raises(TransferFailed):
            market.service.purchase(OTHER_STUDENT, course.id)
        assert not market.service.has_purchased(OTHER_STUDENT, course.id)

        # Caller resubmits after approving
        market.token.approve(OTHER_STUDENT, ESCROW, 1_000)
        market.service.purchase(OTHER_STUDENT, course.id)
        assert market.service.has_purchased(OTHER_STUDENT, course.id)

    def test_second_buyer_unaffected_by_first_failure(self, market, course):
        fund(market, OTHER_STUDENT)
        market.token.blocked.add(STUDENT)

        with pytest.raises(TransferFailed):
            market.service.purchase(STUDENT, course.id)
        market.service.purchase(OTHER_STUDENT, course.id)

        assert market.service.get_earnings(INSTRUCTOR).pending == 90
        assert market.service.get_course_students(course.id) == [OTHER_STUDENT]


class TestEscrowAccountCannotAct:
    """Tests that the escrow's own account is never accepted as a participant."""

    ACCOMPLICE = "0x5555555555555555555555555555555555555555"

    def test_escrow_cannot_buy_with_its_own_float(self, market, purchased):
        """Test that a self-approved escrow purchase cannot credit a seller from other sellers' funds."""
        accomplice_course = open_course(market, price=90, instructor=self.ACCOMPLICE)
        market.token.approve(ESCROW, ESCROW, 90)

        with pytest.raises(InvalidAddress):
            market.service.purchase(ESCROW, accomplice_course.id)

        assert market.token.balance_of(ESCROW) == 90
        assert market.token.balance_of(PLATFORM) == 10
        assert market.service.get_earnings(self.ACCOMPLICE).pending == 0
        assert not market.service.has_purchased(ESCROW, accomplice_course.id)
        assert market.service.withdraw(INSTRUCTOR).amount == 90

    def test_escrow_cannot_withdraw(self, market):
        with pytest.raises(InvalidAddress):
            market.service.withdraw(ESCROW)

    def test_escrow_cannot_join_referrals(self, market):
        with pytest.raises(InvalidAddress):
            market.service.set_referrer(ESCROW, REFERRER)
        with pytest.raises(InvalidAddress):
            market.service.set_referrer(STUDENT, ESCROW)
        assert market.service.get_referrer(STUDENT) is None

    def test_escrow_cannot_be_certified(self, market):
        with pytest.raises(InvalidAddress):
            market.service.certify_instructor(PLATFORM, ESCROW)
        with pytest.raises(InvalidAddress):
            market.service.batch_certify_instructors(PLATFORM, [INSTRUCTOR, ESCROW])

        assert market.service.certified_instructor_count() == 0
