"""
Unit Tests for the Reentrancy Guard and Pause Switch

Tests cover:
1. Reentrant calls from a token callback are rejected and fully rolled back
2. Ledger effects are visible before any token callback runs
3. Admin-only pause/unpause and query availability while paused
"""

import pytest

from escrow.errors import (
    EnforcedPause,
    ExpectedPause,
    ReentrantCall,
    TransferFailed,
    Unauthorized,
)
from escrow.guard import ReentrancyGuard
from escrow.models import EventName
from escrow.tests.factory import ESCROW, INSTRUCTOR, OTHER_STUDENT, PLATFORM, STUDENT, fund


class TestReentrancyGuard:
    """Tests for the guard primitive."""

    def test_nested_enter_rejected(self):
        guard = ReentrancyGuard()

        with guard.enter("outer"):
            assert guard.locked
            with pytest.raises(ReentrantCall):
                with guard.enter("inner"):
                    pass

        assert not guard.locked

    def test_released_after_exception(self):
        guard = ReentrancyGuard()

        with pytest.raises(ValueError):
            with guard.enter("outer"):
                raise ValueError("boom")

        assert not guard.locked


class TestReentrantAttacks:
    """Tests with a malicious counterpart calling back during a transfer."""

    def test_reentrant_withdraw_is_rejected(self, market, purchased):
        """Test a seller trying to withdraw twice from its receive hook."""
        def attack(sender, amount):
            market.service.withdraw(INSTRUCTOR)

        market.token.on_receive(INSTRUCTOR, attack)

        with pytest.raises(ReentrantCall):
            market.service.withdraw(INSTRUCTOR)

        earnings = market.service.get_earnings(INSTRUCTOR)
        assert earnings.pending == 90
        assert earnings.withdrawn == 0
        assert market.token.balance_of(INSTRUCTOR) == 0
        assert market.token.balance_of(ESCROW) == 90
        assert not market.service.guard.locked

        # Honest withdrawal works once the hook is gone
        market.token.on_receive(INSTRUCTOR, None)
        assert market.service.withdraw(INSTRUCTOR).amount == 90

    def test_reentrant_refund_is_rejected(self, market, purchased):
        """Test a buyer trying to refund a second time from its receive hook."""
        market.clock.advance(days=2)

        def attack(sender, amount):
            market.service.request_refund(STUDENT, purchased.id)

        market.token.on_receive(STUDENT, attack)

        with pytest.raises(ReentrantCall):
            market.service.request_refund(STUDENT, purchased.id)

        assert market.service.get_purchase(STUDENT, purchased.id).refunded is False
        assert market.service.get_earnings(INSTRUCTOR).pending == 90
        assert market.token.balance_of(STUDENT) == 9_900

    def test_reentrant_purchase_from_platform_hook(self, market, course):
        fund(market, OTHER_STUDENT)

        def attack(sender, amount):
            market.service.purchase(OTHER_STUDENT, course.id)

        market.token.on_receive(PLATFORM, attack)

        with pytest.raises(ReentrantCall):
            market.service.purchase(STUDENT, course.id)

        assert not market.service.has_purchased(STUDENT, course.id)
        assert not market.service.has_purchased(OTHER_STUDENT, course.id)
        assert market.token.balance_of(STUDENT) == 10_000
        assert market.token.balance_of(PLATFORM) == 0


class TestEffectsBeforeInteractions:
    """Tests that the ledger is already final when a transfer runs."""

    def test_purchase_state_visible_during_transfers(self, market, course):
        seen = []

        def observe(sender, amount):
            seen.append((
                market.service.has_purchased(STUDENT, course.id),
                market.service.get_earnings(INSTRUCTOR).pending,
                market.service.get_progress(STUDENT, course.id).total,
            ))

        market.token.on_receive(ESCROW, observe)
        market.token.on_receive(PLATFORM, observe)

        market.service.purchase(STUDENT, course.id)

        assert seen == [(True, 90, 10), (True, 90, 10)]

    def test_withdraw_state_visible_during_transfer(self, market, purchased):
        seen = []
        market.token.on_receive(INSTRUCTOR, lambda sender, amount: seen.append(
            market.service.get_earnings(INSTRUCTOR).pending
        ))

        market.service.withdraw(INSTRUCTOR)

        assert seen == [0]

    def test_refund_state_visible_during_transfer(self, market, purchased):
        market.clock.advance(days=2)
        seen = []
        market.token.on_receive(STUDENT, lambda sender, amount: seen.append(
            market.service.get_purchase(STUDENT, purchased.id).refunded
        ))

        market.service.request_refund(STUDENT, purchased.id)

        assert seen == [True]


class TestPause:
    """Tests for the emergency pause switch."""

    def test_admin_can_pause_and_unpause(self, market, course):
        market.service.pause(PLATFORM)
        assert market.service.is_paused() is True

        with pytest.raises(EnforcedPause):
            market.service.purchase(STUDENT, course.id)

        market.service.unpause(PLATFORM)
        assert market.service.is_paused() is False

        market.service.purchase(STUDENT, course.id)
        assert market.service.has_purchased(STUDENT, course.id)

    def test_only_admin_can_pause(self, market):
        with pytest.raises(Unauthorized):
            market.service.pause(INSTRUCTOR)
        assert market.service.is_paused() is False

        market.service.pause(PLATFORM)
        with pytest.raises(Unauthorized):
            market.service.unpause(STUDENT)
        assert market.service.is_paused() is True

    def test_pause_twice_and_unpause_running(self, market):
        with pytest.raises(ExpectedPause):
            market.service.unpause(PLATFORM)

        market.service.pause(PLATFORM)
        with pytest.raises(EnforcedPause):
            market.service.pause(PLATFORM)

    def test_queries_available_while_paused(self, market, purchased):
        market.service.pause(PLATFORM)

        assert market.service.get_course(purchased.id).id == purchased.id
        assert market.service.get_earnings(INSTRUCTOR).pending == 90
        assert market.service.has_purchased(STUDENT, purchased.id)
        assert market.service.health_check().paused is True

    def test_pause_events(self, market):
        market.service.pause(PLATFORM)
        market.service.unpause(PLATFORM)

        names = [e.name for e in market.service.get_events().events]
        assert names == [EventName.PAUSED, EventName.UNPAUSED]


class TestStorageSnapshot:
    """Tests for the transaction checkpoint of the store."""

    def test_snapshot_keeps_event_log_by_length(self, market, purchased):
        state = market.service.storage.snapshot()

        assert state["events"] == len(market.service.storage.events)
        assert state["earnings"] is not market.service.storage.earnings

    def test_restore_truncates_event_log(self, market, purchased):
        storage = market.service.storage
        log = storage.events
        state = storage.snapshot()

        storage.emit(EventName.PAUSED, market.clock.now, by=PLATFORM)
        storage.earnings_account(INSTRUCTOR).pending = 0
        storage.restore(state)

        assert storage.events is log
        assert len(storage.events) == state["events"]
        assert storage.events[-1].name == EventName.PURCHASE_COMPLETED
        assert storage.earnings[INSTRUCTOR].pending == 90

    def test_failed_call_leaves_no_events(self, market, purchased):
        before = len(market.service.get_events(limit=1000).events)
        market.token.blocked.add(INSTRUCTOR)

        with pytest.raises(TransferFailed):
            market.service.withdraw(INSTRUCTOR)

        events = market.service.get_events(limit=1000).events
        assert len(events) == before
        assert [e.sequence for e in events] == list(range(1, before + 1))
