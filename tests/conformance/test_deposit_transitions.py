"""
Deposit Transition Conformance Tests

INVARIANT: A deposit request leaves PENDING exactly once.

    PENDING ──approve──▶ APPROVED   balance += amount (once)
    PENDING ──reject───▶ REJECTED   balance unchanged
    APPROVED / REJECTED ──any──▶ InvalidTransition, no effect

Consequence: a user's balance equals the sum of their APPROVED amounts when
deposits are the only balance source.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from datetime import datetime, timezone
from decimal import Decimal

from lessonledger import (
    DepositStatus, RegistrationCandidate, InvalidTransition,
    default_state, register, request_deposit, process_deposit,
)


T0 = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


def _student_state():
    return register(
        default_state(),
        RegistrationCandidate("ahmed", "ahmed@mail.com", "01011111111"),
        "u1",
    )


class TestDepositTransitionProperties:
    """Property-based deposit state machine tests."""

    @given(
        st.lists(st.decimals(min_value=Decimal("0.01"), max_value=1000, places=2), min_size=1, max_size=8),
        st.lists(st.tuples(st.integers(min_value=0, max_value=7), st.booleans()), max_size=25),
    )
    @settings(max_examples=50)
    def test_balance_is_sum_of_approved(self, amounts, decisions):
        """
        PROPERTY: After any sequence of decisions (including repeats), the
        balance equals the sum of APPROVED amounts and each request was
        decided at most once.
        """
        state = _student_state()
        for i, amount in enumerate(amounts):
            state = request_deposit(state, "u1", amount, f"dr{i}", T0)

        decided = {}
        for index, approve in decisions:
            if index >= len(amounts):
                continue
            request_id = f"dr{index}"
            if request_id in decided:
                with pytest.raises(InvalidTransition):
                    process_deposit(state, request_id, approve)
            else:
                state = process_deposit(state, request_id, approve)
                decided[request_id] = approve

        approved_total = sum(
            (r.amount for r in state.deposit_requests if r.status is DepositStatus.APPROVED),
            Decimal("0"),
        )
        assert state.get_user("u1").balance == approved_total
        for request in state.deposit_requests:
            if request.id in decided:
                expected = DepositStatus.APPROVED if decided[request.id] else DepositStatus.REJECTED
                assert request.status is expected
            else:
                assert request.status is DepositStatus.PENDING


class TestDepositTransitionExamples:
    """Explicit transition examples."""

    @pytest.mark.parametrize("first", [True, False])
    @pytest.mark.parametrize("second", [True, False])
    def test_terminal_states(self, first, second):
        state = request_deposit(_student_state(), "u1", Decimal("100"), "dr1", T0)
        state = process_deposit(state, "dr1", first)
        with pytest.raises(InvalidTransition):
            process_deposit(state, "dr1", second)

    def test_approve_credits_exact_amount(self):
        state = request_deposit(_student_state(), "u1", Decimal("100"), "dr1", T0)
        state = process_deposit(state, "dr1", True)
        assert state.get_user("u1").balance == Decimal("100")

    def test_reject_credits_nothing(self):
        state = request_deposit(_student_state(), "u1", Decimal("100"), "dr1", T0)
        state = process_deposit(state, "dr1", False)
        assert state.get_user("u1").balance == Decimal("0")
