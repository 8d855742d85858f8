"""
conftest.py - Shared pytest fixtures for storefront tests

Provides common fixtures used across unit, functional and conformance tests:
- Deterministic clock and id factory
- Seed snapshot (primary owner + two lessons) as a pure AppState
- Storefront engines: fresh, owner logged in, student registered
- Snapshot files under tmp_path
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict

from lessonledger import (
    AppState, RegistrationCandidate, StorefrontConfig,
    Storefront, SnapshotStore, StaticContentHelper, QuizItem,
    default_state, register,
)


# =============================================================================
# HELPER CLASSES
# =============================================================================

class FakeClock:
    """Manually advanced clock. Each call returns the current time."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class CountingIds:
    """Id factory yielding u-1, u-2, dr-1, l-1 ... per prefix."""

    def __init__(self):
        self.counters: Dict[str, int] = {}

    def __call__(self, prefix: str) -> str:
        n = self.counters.get(prefix, 0) + 1
        self.counters[prefix] = n
        return f"{prefix}-{n}"


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def start_time():
    """Standard start time for tests."""
    return datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(start_time):
    return FakeClock(start_time)


@pytest.fixture
def ids():
    return CountingIds()


@pytest.fixture
def owner_email():
    return "nour@gmail.com"


@pytest.fixture
def ahmed():
    """Registration form of the example student."""
    return RegistrationCandidate(
        username="ahmed",
        email="ahmed@mail.com",
        phone="01011111111",
        full_name="Ahmed Hassan",
        father_phone="01022222222",
        mother_phone="01033333333",
    )


@pytest.fixture
def sara():
    return RegistrationCandidate(
        username="sara",
        email="sara@mail.com",
        phone="01044444444",
        full_name="Sara Adel",
    )


# =============================================================================
# PURE STATE FIXTURES
# =============================================================================

@pytest.fixture
def seed_state() -> AppState:
    """Primary owner nour (balance 10000) and lessons l1 (50/3), l2 (75/5)."""
    return default_state()


@pytest.fixture
def student_state(seed_state, ahmed) -> AppState:
    """Seed state plus ahmed (id u1, balance 0), logged in."""
    return register(seed_state, ahmed, "u1")


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def make_storefront(clock, ids):
    """Factory for quiet storefronts sharing the test clock and id factory."""
    def _make(**kwargs) -> Storefront:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("id_factory", ids)
        kwargs.setdefault("verbose", False)
        return Storefront(**kwargs)
    return _make


@pytest.fixture
def storefront(make_storefront) -> Storefront:
    """Seeded storefront, nobody logged in."""
    return make_storefront()


@pytest.fixture
def owner_storefront(storefront, owner_email) -> Storefront:
    """Seeded storefront with the primary owner logged in."""
    assert storefront.login(owner_email)
    return storefront


@pytest.fixture
def student_storefront(storefront, ahmed) -> Storefront:
    """Seeded storefront with ahmed registered (id u-1) and logged in."""
    assert storefront.register(ahmed)
    return storefront


@pytest.fixture
def funded_student_storefront(student_storefront, owner_email, ahmed, clock) -> Storefront:
    """ahmed with an approved deposit of 100, logged back in as ahmed."""
    store = student_storefront
    assert store.request_deposit(100)
    request_id = store.state.deposit_requests[-1].id
    assert store.login(owner_email)
    assert store.process_deposit(request_id, approve=True)
    assert store.login(ahmed.email)
    clock.advance(minutes=1)
    return store


@pytest.fixture
def break_glass_config():
    return StorefrontConfig(break_glass_credential="open-sesame-2025")


# =============================================================================
# PERSISTENCE AND CONTENT FIXTURES
# =============================================================================

@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / "storefront.json"


@pytest.fixture
def snapshot_store(snapshot_path) -> SnapshotStore:
    return SnapshotStore(snapshot_path)


@pytest.fixture
def static_helper() -> StaticContentHelper:
    return StaticContentHelper(
        summary="Derivatives measure how fast things change.",
        quiz=[
            QuizItem("What is d/dx of x^2?", ("x", "2x", "x^2", "2"), 1),
            QuizItem("What does an integral measure?", ("Area", "Slope"), 0),
        ],
    )


@pytest.fixture
def lesson_price():
    return Decimal("50")
