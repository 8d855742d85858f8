"""
identity.py - Identity Store

Holds the rules for resolving and creating users:
1. find_by_identifier() - Trust-based lookup by email or phone (login)
2. register() - Create a STUDENT account, enforcing identity uniqueness
3. is_primary_owner() - Recognize the immutable primary owner
4. login() / logout() - Move the session reference

All functions take an AppState and return a new AppState (or a lookup result).
"""

from __future__ import annotations
from dataclasses import replace
from typing import Optional

from .core import (
    AppState, RegistrationCandidate, Role, User,
    DuplicateIdentity, UserNotFound,
    PRIMARY_OWNER_USERNAME, ZERO,
)


def is_primary_owner(user: Optional[User], owner_username: str = PRIMARY_OWNER_USERNAME) -> bool:
    """True iff the user is the reserved, policy-protected owner account."""
    return user is not None and user.username == owner_username


def find_by_identifier(state: AppState, identifier: str) -> Optional[User]:
    """
    Return the first user whose email or phone equals identifier exactly.

    Usernames are not login identifiers.
    """
    if not identifier:
        return None
    for user in state.users:
        if user.email == identifier or user.phone == identifier:
            return user
    return None


def find_by_username(state: AppState, username: str) -> Optional[User]:
    for user in state.users:
        if user.username == username:
            return user
    return None


def _clashing_field(state: AppState, candidate: RegistrationCandidate) -> Optional[str]:
    for user in state.users:
        if user.username == candidate.username:
            return "username"
        if user.email == candidate.email:
            return "email"
        if user.phone == candidate.phone:
            return "phone"
    return None


def register(state: AppState, candidate: RegistrationCandidate, user_id: str) -> AppState:
    """
    Register a new student and log them in.

    Args:
        state: Current snapshot
        candidate: Registration form
        user_id: Freshly generated id for the new account

    Returns:
        New snapshot containing the user, with current_user_id set to it.

    Raises:
        DuplicateIdentity: If username, email or phone is already taken.
        ValueError: If user_id is already in use.
    """
    clash = _clashing_field(state, candidate)
    if clash is not None:
        raise DuplicateIdentity(f"{clash} {getattr(candidate, clash)!r} is already taken")
    if state.find_user(user_id) is not None:
        raise ValueError(f"User id {user_id} already in use")

    new_user = User(
        id=user_id,
        username=candidate.username,
        email=candidate.email,
        phone=candidate.phone,
        full_name=candidate.full_name,
        father_phone=candidate.father_phone,
        mother_phone=candidate.mother_phone,
        role=Role.STUDENT,
        balance=ZERO,
        purchased_lessons=(),
    )
    return replace(state, users=state.users + (new_user,), current_user_id=new_user.id)


def login(state: AppState, identifier: str) -> AppState:
    """
    Point the session at the user matching identifier.

    Raises:
        UserNotFound: If no user has that email or phone.
    """
    user = find_by_identifier(state, identifier)
    if user is None:
        raise UserNotFound(f"No user with email or phone {identifier!r}")
    return replace(state, current_user_id=user.id)


def logout(state: AppState) -> AppState:
    """Clear the session. Logging out twice is harmless."""
    if state.current_user_id is None:
        return state
    return replace(state, current_user_id=None)
