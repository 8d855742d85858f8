"""
catalog.py - Lesson Catalog

Lesson definitions and the seed state:
1. add_lesson() - Append a lesson with a fresh id (placeholder thumbnail if none)
2. remove_lesson() - Delete a lesson, keeping its entitlement records
3. placeholder_thumbnail() - Deterministic cover image derived from the title
4. default_state() - One OWNER account plus the seed catalog

Price and view_limit feed the Entitlement Ledger: purchase() debits price and
can_consume() gates on view_limit.
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal
from typing import Optional, Tuple
from urllib.parse import quote

from .core import (
    AppState, Lesson, LessonDefinition, Role, StorefrontConfig, User,
    LessonNotFound,
)


PLACEHOLDER_THUMBNAIL_TEMPLATE = "https://picsum.photos/seed/{seed}/400/225"

SAMPLE_VIDEO_REF = "https://www.w3schools.com/html/mov_bbb.mp4"

SEED_LESSONS: Tuple[Lesson, ...] = (
    Lesson(
        id="l1",
        title="Advanced Calculus Basics",
        description="A deep dive into derivatives and integrals for high school seniors.",
        price=Decimal("50"),
        view_limit=3,
        video_ref=SAMPLE_VIDEO_REF,
        thumbnail_ref=PLACEHOLDER_THUMBNAIL_TEMPLATE.format(seed="math"),
    ),
    Lesson(
        id="l2",
        title="Organic Chemistry: Hydrocarbons",
        description="Understanding alkanes, alkenes, and alkynes with practical examples.",
        price=Decimal("75"),
        view_limit=5,
        video_ref=SAMPLE_VIDEO_REF,
        thumbnail_ref=PLACEHOLDER_THUMBNAIL_TEMPLATE.format(seed="chem"),
    ),
)

SEED_OWNER_ID = "u0"


def placeholder_thumbnail(title: str) -> str:
    """Same title, same placeholder URL."""
    return PLACEHOLDER_THUMBNAIL_TEMPLATE.format(seed=quote(title, safe=""))


def add_lesson(state: AppState, definition: LessonDefinition, lesson_id: str) -> AppState:
    """
    Append a lesson built from definition.

    Raises:
        ValueError: If lesson_id is already in the catalog.
    """
    if state.find_lesson(lesson_id) is not None:
        raise ValueError(f"Lesson id {lesson_id} already in catalog")
    lesson = Lesson(
        id=lesson_id,
        title=definition.title,
        description=definition.description,
        price=definition.price,
        view_limit=definition.view_limit,
        video_ref=definition.video_ref,
        thumbnail_ref=definition.thumbnail_ref or placeholder_thumbnail(definition.title),
    )
    return replace(state, lessons=state.lessons + (lesson,))


def remove_lesson(state: AppState, lesson_id: str) -> AppState:
    """
    Delete a lesson from the catalog.

    Entitlement records and users' purchased_lessons entries that reference it
    are kept; readers must treat the missing lesson as unknown.

    Raises:
        LessonNotFound: If lesson_id is not in the catalog.
    """
    state.get_lesson(lesson_id)
    return replace(state, lessons=tuple(l for l in state.lessons if l.id != lesson_id))


def default_state(config: Optional[StorefrontConfig] = None) -> AppState:
    """
    Build the initial snapshot used when no saved snapshot exists.

    Contains the primary owner (with the configured seed balance) and the
    seed catalog. Nobody is logged in.
    """
    config = config or StorefrontConfig()
    owner = User(
        id=SEED_OWNER_ID,
        username=config.primary_owner_username,
        email=f"{config.primary_owner_username}@gmail.com",
        phone="01028178830",
        full_name="Eng. Shehab Elebady",
        father_phone="N/A",
        mother_phone="N/A",
        role=Role.OWNER,
        balance=config.seed_owner_balance,
    )
    return AppState(users=(owner,), lessons=SEED_LESSONS)
