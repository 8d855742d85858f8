"""
access.py - Access Control Policy

Pure decision functions over (actor, target) pairs. Every action that changes
another user's role or removes another user goes through
check_user_management(); staff-only actions go through require_staff().

Rules for managing another user, evaluated in order:
    1. Deny if the actor is not ADMIN or OWNER.
    2. Deny if the target is the primary owner.
    3. Deny if the actor is ADMIN and the target is OWNER.
    4. Deny if the actor is the target.
    5. Otherwise allow.

ROLE_PRIORITY orders roles for display (OWNER first). It is a ranking, not a
permission hierarchy.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from .core import (
    AppState, Role, User,
    PermissionDenied, NotAuthenticated,
    PRIMARY_OWNER_USERNAME,
)
from .identity import is_primary_owner


ROLE_PRIORITY: Dict[Role, int] = {
    Role.OWNER: 0,
    Role.ADMIN: 1,
    Role.STUDENT: 2,
}

STAFF_ROLES = frozenset({Role.ADMIN, Role.OWNER})


def is_staff(user: Optional[User]) -> bool:
    """True if the user may act on other users' records."""
    return user is not None and user.role in STAFF_ROLES


def require_staff(actor: Optional[User]) -> User:
    """
    Check that the actor is a logged-in ADMIN or OWNER.

    Returns:
        The actor, for chaining.

    Raises:
        NotAuthenticated: If there is no actor.
        PermissionDenied: If the actor is a student.
    """
    if actor is None:
        raise NotAuthenticated("This action requires a logged-in user")
    if not is_staff(actor):
        raise PermissionDenied(f"@{actor.username} is not an admin or owner")
    return actor


def check_user_management(
    actor: Optional[User],
    target: User,
    owner_username: str = PRIMARY_OWNER_USERNAME,
) -> None:
    """
    Decide whether actor may change target's role or remove target.

    Raises:
        PermissionDenied: With a reason naming the rule that refused.
    """
    if not is_staff(actor):
        raise PermissionDenied("Only admins and owners can manage users")
    if is_primary_owner(target, owner_username):
        raise PermissionDenied("The primary owner account cannot be modified")
    if actor.role is Role.ADMIN and target.role is Role.OWNER:
        raise PermissionDenied("Admins cannot change owner permissions")
    if actor.id == target.id:
        raise PermissionDenied("Users cannot change their own role")


def change_role(
    state: AppState,
    actor: Optional[User],
    target_id: str,
    role: Role,
    owner_username: str = PRIMARY_OWNER_USERNAME,
) -> AppState:
    """
    Set target's role after the policy allows it.

    The actor check runs before the target lookup, so a student probing for
    user ids gets PermissionDenied, never UserNotFound.

    Raises:
        PermissionDenied: If any policy rule refuses.
        UserNotFound: If target_id matches no user.
    """
    if not is_staff(actor):
        raise PermissionDenied("Only admins and owners can manage users")
    role = Role(role)
    target = state.get_user(target_id)
    check_user_management(actor, target, owner_username)
    if target.role is role:
        return state
    return state.with_user(replace(target, role=role))


def rank_users(users: Iterable[User]) -> List[User]:
    """Sort users OWNER, ADMIN, STUDENT; stable within a role."""
    return sorted(users, key=lambda u: ROLE_PRIORITY.get(u.role, len(ROLE_PRIORITY)))


def remove_user(
    state: AppState,
    actor: Optional[User],
    target_id: str,
    owner_username: str = PRIMARY_OWNER_USERNAME,
) -> AppState:
    """
    Delete a user account under the same policy as role changes.

    The removed user's entitlement records and deposit requests stay in the
    snapshot; reports treat them as belonging to an unknown user.

    Raises:
        PermissionDenied: If any policy rule refuses.
        UserNotFound: If target_id matches no user.
    """
    if not is_staff(actor):
        raise PermissionDenied("Only admins and owners can manage users")
    target = state.get_user(target_id)
    check_user_management(actor, target, owner_username)
    return replace(
        state,
        users=tuple(u for u in state.users if u.id != target.id),
        current_user_id=None if state.current_user_id == target.id else state.current_user_id,
    )
