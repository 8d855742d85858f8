"""
Canonicalization Conformance Tests

INVARIANT: Snapshot identity is content-based.

    ∀ snapshots S1, S2:
        S1 == S2 ⟹ state_fingerprint(S1) == state_fingerprint(S2)
        loads(dumps(S)) == S

Decimal spelling ("50", "50.0", "50.00") never changes a fingerprint or a
saved snapshot.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from lessonledger import (
    RegistrationCandidate,
    default_state, register, adjust, purchase, record_consumption,
    request_deposit, process_deposit,
    state_fingerprint, dumps, loads,
)
from lessonledger.core import _canonicalize, _normalize_decimal


T0 = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

MONEY = st.decimals(min_value=0, max_value=10_000, places=2)


def _build(balance, deposit, approve, views, minutes):
    state = register(
        default_state(),
        RegistrationCandidate("ahmed", "ahmed@mail.com", "01011111111"),
        "u1",
    )
    state = adjust(state, "u1", balance)
    if deposit > 0:
        state = request_deposit(state, "u1", deposit, "dr1", T0 + timedelta(minutes=minutes))
        state = process_deposit(state, "dr1", approve)
    if state.get_user("u1").balance >= Decimal("50"):
        state = purchase(state, "u1", "l1", T0)
        for _ in range(views):
            state = record_consumption(state, "u1", "l1")
    return state


SNAPSHOT_ARGS = st.tuples(
    MONEY, MONEY, st.booleans(),
    st.integers(min_value=0, max_value=5),
    st.integers(min_value=0, max_value=10_000),
)


class TestCanonicalizationProperties:
    """Property-based canonical form tests."""

    @given(SNAPSHOT_ARGS)
    @settings(max_examples=50)
    def test_fingerprint_deterministic(self, args):
        """
        PROPERTY: Building the same snapshot twice gives the same fingerprint.
        """
        assert state_fingerprint(_build(*args)) == state_fingerprint(_build(*args))

    @given(SNAPSHOT_ARGS)
    @settings(max_examples=50)
    def test_snapshot_round_trip(self, args):
        """
        PROPERTY: loads(dumps(S)) == S and keeps the fingerprint.
        """
        state = _build(*args)
        restored = loads(dumps(state))
        assert restored == state
        assert state_fingerprint(restored) == state_fingerprint(state)

    @given(SNAPSHOT_ARGS)
    @settings(max_examples=50)
    def test_dumps_stable(self, args):
        """
        PROPERTY: Re-serializing a restored snapshot gives identical text.
        """
        text = dumps(_build(*args))
        assert dumps(loads(text)) == text

    @given(st.integers(min_value=0, max_value=10**9), st.integers(min_value=0, max_value=4))
    @settings(max_examples=50)
    def test_decimal_spelling_irrelevant(self, whole, extra_zeros):
        """
        PROPERTY: Trailing zeros never change the canonical decimal.
        """
        plain = Decimal(whole)
        padded = Decimal(f"{whole}." + "0" * extra_zeros) if extra_zeros else plain
        assert _normalize_decimal(plain) == _normalize_decimal(padded)
        assert _canonicalize(plain) == _canonicalize(padded)


class TestCanonicalizationExamples:
    """Explicit canonical form examples."""

    @pytest.mark.parametrize("spelling", ["50", "50.0", "50.00", "5E+1"])
    def test_normalize(self, spelling):
        assert _normalize_decimal(Decimal(spelling)) == "50"

    def test_fractional(self):
        assert _normalize_decimal(Decimal("12.50")) == "12.5"

    def test_dict_order_irrelevant(self):
        assert _canonicalize({"a": 1, "b": 2}) == _canonicalize({"b": 2, "a": 1})

    def test_seed_balance_spelling(self):
        owner = default_state().get_user("u0")
        a = default_state().with_user(replace(owner, balance=Decimal("10000")))
        b = default_state().with_user(replace(owner, balance=Decimal("10000.000")))
        assert state_fingerprint(a) == state_fingerprint(b)
