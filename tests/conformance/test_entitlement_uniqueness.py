"""
Entitlement Uniqueness Conformance Tests

INVARIANT: At most one entitlement record per (user, lesson), and ownership
and records agree.

    ∀ user u, lesson l:
        |{r ∈ activity : r.key = (u, l)}| ≤ 1
        l ∈ u.purchased_lessons ⟺ record (u, l) exists

INVARIANT: Views are metered.

    can_consume(u, l) ⟹ views_used < view_limit
    consume() never takes views_used past view_limit
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal

from lessonledger import (
    RegistrationCandidate, StorefrontError,
    default_state, register, adjust, purchase, consume, can_consume,
    verify_invariants,
)


T0 = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

STUDENTS = [
    RegistrationCandidate("ahmed", "ahmed@mail.com", "01011111111"),
    RegistrationCandidate("sara", "sara@mail.com", "01044444444"),
]


def _class_state(balance):
    state = default_state()
    for i, candidate in enumerate(STUDENTS, start=1):
        state = register(state, candidate, f"u{i}")
        state = adjust(state, f"u{i}", balance)
    return state


STEPS = st.lists(
    st.tuples(
        st.sampled_from(["purchase", "consume"]),
        st.sampled_from(["u1", "u2"]),
        st.sampled_from(["l1", "l2"]),
    ),
    min_size=1,
    max_size=40,
)


class TestEntitlementUniquenessProperties:
    """Property-based entitlement tests."""

    @given(st.decimals(min_value=0, max_value=200, places=2), STEPS)
    @settings(max_examples=50)
    def test_one_record_per_pair(self, balance, steps):
        """
        PROPERTY: Repeated purchase attempts never create a second record or
        a second debit; ownership and records always agree.
        """
        state = _class_state(balance)
        for kind, user_id, lesson_id in steps:
            try:
                if kind == "purchase":
                    state = purchase(state, user_id, lesson_id, T0)
                else:
                    state = consume(state, user_id, lesson_id)
            except StorefrontError:
                pass

            counts = Counter(r.key for r in state.activity)
            assert all(n == 1 for n in counts.values())
            assert verify_invariants(state)['valid']

        for user in state.users[1:]:
            spent = sum((state.get_lesson(l).price for l in user.purchased_lessons), Decimal("0"))
            assert user.balance == balance - spent

    @given(STEPS)
    @settings(max_examples=50)
    def test_views_never_exceed_limit(self, steps):
        """
        PROPERTY: Gated consumption keeps views_used within view_limit.
        """
        state = _class_state(Decimal("1000"))
        for kind, user_id, lesson_id in steps:
            allowed = can_consume(state, user_id, lesson_id)
            try:
                if kind == "purchase":
                    state = purchase(state, user_id, lesson_id, T0)
                else:
                    state = consume(state, user_id, lesson_id)
                    assert allowed
            except StorefrontError:
                if kind == "consume":
                    assert not allowed

            for record in state.activity:
                assert record.views_used <= state.get_lesson(record.lesson_id).view_limit


class TestEntitlementUniquenessExamples:
    """Explicit examples."""

    def test_repurchase_does_not_double_debit(self):
        state = _class_state(Decimal("100"))
        state = purchase(state, "u1", "l1", T0)
        with pytest.raises(StorefrontError):
            purchase(state, "u1", "l1", T0)
        assert state.get_user("u1").balance == Decimal("50")
        assert len(state.activity) == 1

    def test_limit_boundary(self):
        state = purchase(_class_state(Decimal("100")), "u1", "l1", T0)
        for _ in range(3):
            state = consume(state, "u1", "l1")
        assert not can_consume(state, "u1", "l1")
