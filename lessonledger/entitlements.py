"""
entitlements.py - Entitlement Ledger: purchases and view metering

The authority for "can this user watch this lesson right now":

    purchase(state, user_id, lesson_id, ts)
        One snapshot applies all three effects or none:
        - debit the lesson price from the wallet (hard-failing)
        - add lesson_id to the user's purchased_lessons
        - create EntitlementRecord(views_used=0)

    can_consume(state, user_id, lesson_id)
        owns lesson AND lesson still in catalog AND views_used < view_limit

    record_consumption(state, user_id, lesson_id)
        views_used += 1. Not gated: callers check can_consume() first, once
        per playback session start. consume() bundles gate and counter.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Optional

from .core import (
    AppState, EntitlementRecord,
    AlreadyOwned, LessonNotFound, NotEntitled, ViewLimitExceeded,
)
from .wallet import debit


def purchase(state: AppState, user_id: str, lesson_id: str, timestamp: datetime) -> AppState:
    """
    Buy a lesson for a user.

    Preconditions are checked in this order: lesson exists, user exists, not
    already owned, enough funds. Ownership is checked before funds so that a
    repeat purchase reports AlreadyOwned even when the wallet is empty.

    Raises:
        LessonNotFound: If the lesson is not in the catalog.
        UserNotFound: If the user does not exist.
        AlreadyOwned: If the user owns the lesson or already has a record for it.
        InsufficientFunds: If balance < price.
    """
    lesson = state.get_lesson(lesson_id)
    user = state.get_user(user_id)
    if user.owns(lesson_id) or state.find_record(user_id, lesson_id) is not None:
        raise AlreadyOwned(f"@{user.username} already owns lesson {lesson_id}")

    # Debit first: it is the only step that can fail after the checks above.
    state = debit(state, user_id, lesson.price)
    debited = state.get_user(user_id)
    state = state.with_user(
        replace(debited, purchased_lessons=debited.purchased_lessons + (lesson_id,))
    )
    record = EntitlementRecord(
        user_id=user_id,
        lesson_id=lesson_id,
        purchase_date=timestamp,
        views_used=0,
    )
    return replace(state, activity=state.activity + (record,))


def can_consume(state: AppState, user_id: Optional[str], lesson_id: str) -> bool:
    """True iff the user owns the lesson and has views left on it."""
    user = state.find_user(user_id)
    lesson = state.find_lesson(lesson_id)
    if user is None or lesson is None or not user.owns(lesson_id):
        return False
    record = state.find_record(user_id, lesson_id)
    if record is None:
        return False
    return record.views_used < lesson.view_limit


def record_consumption(state: AppState, user_id: Optional[str], lesson_id: str) -> AppState:
    """
    Count one playback session start.

    Returns the same snapshot (no-op) when there is no user or no record for
    the pair. The counter is not clamped at view_limit.
    """
    if user_id is None:
        return state
    record = state.find_record(user_id, lesson_id)
    if record is None:
        return state
    return state.with_record(replace(record, views_used=record.views_used + 1))


def consume(state: AppState, user_id: Optional[str], lesson_id: str) -> AppState:
    """
    Gate-then-count: check can_consume(), then record_consumption().

    Raises:
        LessonNotFound: If the lesson is not (or no longer) in the catalog.
        NotEntitled: If the user never bought the lesson.
        ViewLimitExceeded: If views_used has reached view_limit.
    """
    lesson = state.get_lesson(lesson_id)
    user = state.find_user(user_id)
    record = state.find_record(user_id, lesson_id)
    if user is None or not user.owns(lesson_id) or record is None:
        raise NotEntitled(f"User {user_id} has not purchased lesson {lesson_id}")
    if record.views_used >= lesson.view_limit:
        raise ViewLimitExceeded(
            f"Lesson {lesson_id}: {record.views_used}/{lesson.view_limit} views used"
        )
    return record_consumption(state, user_id, lesson_id)


def views_remaining(state: AppState, user_id: Optional[str], lesson_id: str) -> int:
    """
    Views left for the user on a lesson.

    The full view_limit if the lesson was never purchased; 0 if the lesson is
    no longer in the catalog.
    """
    lesson = state.find_lesson(lesson_id)
    if lesson is None:
        return 0
    record = state.find_record(user_id, lesson_id)
    if record is None:
        return lesson.view_limit
    return max(0, lesson.view_limit - record.views_used)
