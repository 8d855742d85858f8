"""
reports.py - Read-only aggregates over a snapshot

Staff dashboard figures and an invariant checker. Nothing here changes state.
"""

from __future__ import annotations
from collections import Counter
from decimal import Decimal
from typing import Any, Dict, List

from .access import rank_users
from .core import AppState, Role, User, ZERO


def student_count(state: AppState) -> int:
    return sum(1 for u in state.users if u.role is Role.STUDENT)


def total_revenue(state: AppState) -> Decimal:
    """
    Sum of current catalog prices over all entitlement records.

    Records whose lesson has been removed contribute nothing.
    """
    prices = {l.id: l.price for l in state.lessons}
    return sum((prices.get(r.lesson_id, ZERO) for r in state.activity), ZERO)


def purchases_by_lesson(state: AppState) -> Dict[str, int]:
    """Purchase count per catalog lesson id (zero for unsold lessons)."""
    counts = Counter(r.lesson_id for r in state.activity)
    return {l.id: counts.get(l.id, 0) for l in state.lessons}


def search_users(state: AppState, term: str) -> List[User]:
    """
    Find users by any identifying detail, ranked OWNER, ADMIN, STUDENT.

    Username, full name and email match case-insensitively; the three phone
    fields match as plain substrings. An empty term returns everyone.
    """
    needle = term.lower()
    matches = [
        u for u in state.users
        if needle in u.username.lower()
        or needle in u.full_name.lower()
        or needle in u.email.lower()
        or term in u.phone
        or term in u.father_phone
        or term in u.mother_phone
    ]
    return rank_users(matches)


def verify_invariants(state: AppState) -> Dict[str, Any]:
    """
    Check the ledger invariants that construction alone cannot guarantee.

    Useful after loading a snapshot written by another process.

    Returns:
        Dict with keys:
        - 'valid': bool - True if no violation was found
        - 'violations': List[str] - One line per violation

    Example:
        result = verify_invariants(store.state)
        assert result['valid'], result['violations']
    """
    violations: List[str] = []

    for field_name in ("id", "username", "email", "phone"):
        counts = Counter(getattr(u, field_name) for u in state.users)
        for value, n in sorted(counts.items()):
            if n > 1:
                violations.append(f"duplicate {field_name} {value!r} on {n} users")

    for user in state.users:
        if user.balance < ZERO:
            violations.append(f"negative balance on {user.id}: {user.balance}")

    record_counts = Counter(r.key for r in state.activity)
    for (user_id, lesson_id), n in sorted(record_counts.items()):
        if n > 1:
            violations.append(f"{n} entitlement records for ({user_id}, {lesson_id})")

    # Removed users leave records behind; only check users still present.
    for user in state.users:
        for lesson_id in user.purchased_lessons:
            if (user.id, lesson_id) not in record_counts:
                violations.append(f"{user.id} owns {lesson_id} without an entitlement record")
    for record in state.activity:
        user = state.find_user(record.user_id)
        if user is not None and not user.owns(record.lesson_id):
            violations.append(
                f"entitlement record ({record.user_id}, {record.lesson_id}) without a purchase"
            )

    if state.current_user_id is not None and state.find_user(state.current_user_id) is None:
        violations.append(f"session points at missing user {state.current_user_id}")

    return {
        'valid': len(violations) == 0,
        'violations': violations,
    }
