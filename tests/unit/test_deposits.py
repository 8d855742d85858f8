"""
test_deposits.py - Unit tests for the Deposit Workflow

Tests:
- request_deposit: PENDING creation, session requirement, no maximum
- process_deposit: approve credits exactly once, reject credits nothing,
  terminal states refuse further processing
- pending_requests / requests_for_user
"""

import pytest
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from lessonledger import (
    DepositStatus,
    NotAuthenticated, RequestNotFound, InvalidTransition, UserNotFound,
    request_deposit, process_deposit, pending_requests, requests_for_user,
    remove_user, balance_of,
)


T0 = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def pending_state(student_state):
    """ahmed (u1) has one PENDING request dr1 for 100."""
    return request_deposit(student_state, "u1", Decimal("100"), "dr1", T0)


class TestRequestDeposit:
    """Tests for filing a request."""

    def test_creates_pending_request(self, pending_state):
        request = pending_state.find_request("dr1")
        assert request.status is DepositStatus.PENDING
        assert request.amount == Decimal("100")
        assert request.username == "ahmed"
        assert request.created_at == T0

    def test_balance_unchanged_until_approval(self, pending_state):
        assert balance_of(pending_state, "u1") == Decimal("0")

    def test_requires_session(self, seed_state):
        with pytest.raises(NotAuthenticated):
            request_deposit(seed_state, "u0", 100, "dr1", T0)

    def test_unknown_user(self, student_state):
        with pytest.raises(UserNotFound):
            request_deposit(student_state, "ghost", 100, "dr1", T0)

    def test_no_maximum(self, student_state):
        state = request_deposit(student_state, "u1", Decimal("1000000000"), "dr1", T0)
        assert state.find_request("dr1").amount == Decimal("1000000000")

    def test_duplicate_request_id(self, pending_state):
        with pytest.raises(ValueError):
            request_deposit(pending_state, "u1", 5, "dr1", T0)


class TestProcessDeposit:
    """Tests for the PENDING -> APPROVED/REJECTED transition."""

    def test_approve_credits_exact_amount(self, pending_state):
        state = process_deposit(pending_state, "dr1", approve=True)
        assert balance_of(state, "u1") == Decimal("100")
        assert state.find_request("dr1").status is DepositStatus.APPROVED

    def test_reject_credits_nothing(self, pending_state):
        state = process_deposit(pending_state, "dr1", approve=False)
        assert balance_of(state, "u1") == Decimal("0")
        assert state.find_request("dr1").status is DepositStatus.REJECTED

    @pytest.mark.parametrize("first,second", [
        (True, True), (True, False), (False, True), (False, False),
    ])
    def test_second_processing_fails(self, pending_state, first, second):
        """APPROVED and REJECTED are terminal."""
        state = process_deposit(pending_state, "dr1", approve=first)
        with pytest.raises(InvalidTransition):
            process_deposit(state, "dr1", approve=second)
        expected = Decimal("100") if first else Decimal("0")
        assert balance_of(state, "u1") == expected

    def test_unknown_request(self, pending_state):
        with pytest.raises(RequestNotFound):
            process_deposit(pending_state, "dr-nope", approve=True)

    def test_approve_for_removed_user_changes_nothing(self, pending_state):
        owner = pending_state.get_user("u0")
        state = remove_user(pending_state, owner, "u1")
        with pytest.raises(UserNotFound):
            process_deposit(state, "dr1", approve=True)
        assert state.find_request("dr1").is_pending

    def test_session_sees_new_balance(self, pending_state):
        """The session references the user by id, so it is never stale."""
        state = process_deposit(pending_state, "dr1", approve=True)
        assert state.current_user.balance == Decimal("100")


class TestDepositQueries:
    """Tests for pending_requests and requests_for_user."""

    def test_pending_requests(self, pending_state):
        state = request_deposit(pending_state, "u1", 20, "dr2", T0)
        state = process_deposit(state, "dr1", approve=False)
        assert [r.id for r in pending_requests(state)] == ["dr2"]

    def test_requests_for_user_newest_first_limited(self, student_state):
        state = student_state
        for i in range(7):
            state = request_deposit(state, "u1", 10 + i, f"dr{i}", T0 + timedelta(minutes=i))
        recent = requests_for_user(state, "u1")
        assert [r.id for r in recent] == ["dr6", "dr5", "dr4", "dr3", "dr2"]

    def test_requests_for_user_filters_by_user(self, pending_state):
        state = replace(pending_state, current_user_id="u0")
        state = request_deposit(state, "u0", 5, "dr-owner", T0)
        assert [r.id for r in requests_for_user(state, "u1")] == ["dr1"]
