"""
Core types and pure helpers for the lesson storefront ledger.

This module provides the foundational data structures for the engine:
1. Enums: Role, DepositStatus, OriginType, ExecuteResult
2. Immutable data structures: User, Lesson, EntitlementRecord, DepositRequest, AppState
3. Input forms: RegistrationCandidate, LessonDefinition
4. Exceptions: StorefrontError and one subclass per expected failure kind
5. Execution records: ActionResult, ActionRecord
6. Money helpers and canonical serialization for fingerprints

Every structure here is frozen. Transition functions in the sibling modules
take an AppState and return a new AppState; nothing in this module mutates.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN, getcontext
from enum import Enum
import hashlib
from typing import Any, Dict, Optional, Tuple


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Wallet arithmetic must be deterministic. Balances are quantized to cents with
# banker's rounding. Amounts whose cent value needs more than 50 digits are
# out of range (InvalidAmount).
#
_STOREFRONT_DECIMAL_CONTEXT = getcontext()
_STOREFRONT_DECIMAL_CONTEXT.prec = 50
_STOREFRONT_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved username of the immutable primary owner (overridable by config).
PRIMARY_OWNER_USERNAME = "nour"

# Currency precision for balances, prices and deposit amounts.
MONEY_DECIMAL_PLACES = 2
MONEY_QUANTUM = Decimal(10) ** -MONEY_DECIMAL_PLACES

ZERO = Decimal("0")


# ============================================================================
# ENUMS
# ============================================================================

class Role(Enum):
    """User role. Ranking for display lives in access.ROLE_PRIORITY."""
    STUDENT = "STUDENT"
    ADMIN = "ADMIN"
    OWNER = "OWNER"


class DepositStatus(Enum):
    """
    Deposit request lifecycle.

    PENDING is the only non-terminal state. APPROVED and REJECTED are reached
    exactly once and never left.
    """
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ExecuteResult(Enum):
    """
    Outcome of an action submitted to the Storefront.

    APPLIED: The transition validated and the next snapshot replaced the old one.
    REJECTED: A precondition failed; the state is unchanged.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Who drove an applied action, kept on every ActionRecord for audit."""
    USER_ACTION = "user_action"       # Self-service action by the session user
    ADMIN_ACTION = "admin_action"     # Staff action against another record
    SYSTEM = "system"                 # Seeding, snapshot restore
    BREAK_GLASS = "break_glass"       # Emergency owner login via configured credential


# ============================================================================
# EXCEPTIONS
# ============================================================================

class StorefrontError(Exception):
    """Base exception for every expected, non-fatal engine outcome."""
    pass


class DuplicateIdentity(StorefrontError):
    """Raised when a registration shares a username, email or phone with an existing user."""
    pass


class PermissionDenied(StorefrontError):
    """Raised when the access policy refuses an action (including the primary-owner and self-edit cases)."""
    pass


class NotAuthenticated(StorefrontError):
    """Raised when an action needs a logged-in user and the session is empty."""
    pass


class InsufficientFunds(StorefrontError):
    """Raised when a debit would take a wallet below zero."""
    pass


class AlreadyOwned(StorefrontError):
    """Raised when a user tries to buy a lesson they already own."""
    pass


class LessonNotFound(StorefrontError):
    """Raised when a lesson id is not in the catalog."""
    pass


class UserNotFound(StorefrontError):
    """Raised when a user id or login identifier matches no user."""
    pass


class RequestNotFound(StorefrontError):
    """Raised when a deposit request id does not exist."""
    pass


class InvalidTransition(StorefrontError):
    """Raised when processing a deposit request that is no longer PENDING."""
    pass


class ViewLimitExceeded(StorefrontError):
    """Raised when a consumption attempt is made after the view quota is used up."""
    pass


class NotEntitled(StorefrontError):
    """Raised when a user tries to consume a lesson they never purchased."""
    pass


class InvalidAmount(StorefrontError, ValueError):
    """
    Raised when a money amount is unusable: a non-positive deposit, or a value
    too large to hold at cent precision.
    """
    pass


# ============================================================================
# MONEY HELPERS
# ============================================================================

def to_money(value: Any) -> Decimal:
    """
    Convert a numeric value to a cent-quantized Decimal.

    Floats go through str() so that 0.1 becomes Decimal("0.10"), not the
    binary expansion.

    Raises:
        ValueError: If the value is not a finite number.
        InvalidAmount: If the value does not fit the decimal context at cent
            precision (also a ValueError).
    """
    if isinstance(value, bool):
        raise ValueError(f"Money amount must be numeric, got {value!r}")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except ArithmeticError as e:
            raise ValueError(f"Money amount must be numeric, got {value!r}") from e
    if value.is_nan() or value.is_infinite():
        raise ValueError(f"Money amount must be finite, got {value}")
    try:
        return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_EVEN)
    except InvalidOperation as e:
        raise InvalidAmount(f"Money amount out of range: {value}") from e


def _normalize_decimal(d: Decimal) -> str:
    """
    Normalize a Decimal to a canonical string representation.

    Decimal("50"), Decimal("50.0") and Decimal("50.00") all become "50".
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Dict ordering and Decimal representation do not affect the output.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return f"E:{value.value}"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    if isinstance(value, (set, frozenset)):
        serialized = ",".join(_canonicalize(item) for item in sorted(value, key=str))
        return f"<{serialized}>"
    return f"R:{repr(value)}"


def _require_text(value: str, field_name: str, owner: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{owner} {field_name} cannot be empty")


# ============================================================================
# INPUT FORMS
# ============================================================================

@dataclass(frozen=True, slots=True)
class RegistrationCandidate:
    """
    The registration form submitted by a prospective student.

    username, email and phone are the identity fields checked for uniqueness;
    the parent phone numbers are contact details only.
    """
    username: str
    email: str
    phone: str
    full_name: str = ""
    father_phone: str = ""
    mother_phone: str = ""

    def __post_init__(self):
        _require_text(self.username, "username", "RegistrationCandidate")
        _require_text(self.email, "email", "RegistrationCandidate")
        _require_text(self.phone, "phone", "RegistrationCandidate")


@dataclass(frozen=True, slots=True)
class LessonDefinition:
    """
    Catalog entry as submitted by staff, before an id is assigned.

    thumbnail_ref may be omitted; the catalog derives a placeholder from the title.
    """
    title: str
    description: str
    price: Decimal
    view_limit: int
    video_ref: str = ""
    thumbnail_ref: Optional[str] = None

    def __post_init__(self):
        _require_text(self.title, "title", "LessonDefinition")
        object.__setattr__(self, 'price', to_money(self.price))
        _validate_lesson_terms(self.price, self.view_limit)


def _validate_lesson_terms(price: Decimal, view_limit: int) -> None:
    if price < ZERO:
        raise ValueError(f"Lesson price must be non-negative, got {price}")
    if isinstance(view_limit, bool) or not isinstance(view_limit, int):
        raise ValueError(f"Lesson view_limit must be an integer, got {view_limit!r}")
    if view_limit < 1:
        raise ValueError(f"Lesson view_limit must be at least 1, got {view_limit}")


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class User:
    """
    A storefront account: identity, wallet and entitlement set.

    Attributes:
        id: Stable unique key.
        username: Unique, case-sensitive handle.
        email: Login identifier, unique across users.
        phone: Login identifier, unique across users.
        full_name: Display name.
        father_phone: Parent contact.
        mother_phone: Parent contact.
        role: STUDENT, ADMIN or OWNER.
        balance: Wallet balance; never negative.
        purchased_lessons: Ids of owned lessons, in purchase order, no duplicates.
    """
    id: str
    username: str
    email: str
    phone: str
    full_name: str = ""
    father_phone: str = ""
    mother_phone: str = ""
    role: Role = Role.STUDENT
    balance: Decimal = ZERO
    purchased_lessons: Tuple[str, ...] = ()

    def __post_init__(self):
        _require_text(self.id, "id", "User")
        _require_text(self.username, "username", "User")
        if not isinstance(self.role, Role):
            object.__setattr__(self, 'role', Role(self.role))
        balance = to_money(self.balance)
        if balance < ZERO:
            raise ValueError(f"User {self.username} balance must be non-negative, got {balance}")
        object.__setattr__(self, 'balance', balance)
        lessons = tuple(self.purchased_lessons)
        if len(set(lessons)) != len(lessons):
            raise ValueError(f"User {self.username} purchased_lessons contains duplicates")
        object.__setattr__(self, 'purchased_lessons', lessons)

    def owns(self, lesson_id: str) -> bool:
        return lesson_id in self.purchased_lessons

    def __repr__(self) -> str:
        return f"User({self.id}: @{self.username} [{self.role.value}] balance={self.balance})"


@dataclass(frozen=True, slots=True)
class Lesson:
    """
    A catalog entry.

    video_ref and thumbnail_ref are opaque location identifiers; hosting the
    media is outside the engine.
    """
    id: str
    title: str
    description: str
    price: Decimal
    view_limit: int
    video_ref: str = ""
    thumbnail_ref: str = ""

    def __post_init__(self):
        _require_text(self.id, "id", "Lesson")
        object.__setattr__(self, 'price', to_money(self.price))
        _validate_lesson_terms(self.price, self.view_limit)


@dataclass(frozen=True, slots=True)
class EntitlementRecord:
    """
    Per (user, lesson) purchase record and view counter.

    views_used is not clamped to the lesson's view_limit; the limit is a gate
    checked by can_consume().
    """
    user_id: str
    lesson_id: str
    purchase_date: datetime
    views_used: int = 0

    def __post_init__(self):
        if isinstance(self.views_used, bool) or not isinstance(self.views_used, int):
            raise ValueError(f"EntitlementRecord views_used must be an integer, got {self.views_used!r}")
        if self.views_used < 0:
            raise ValueError(f"EntitlementRecord views_used must be non-negative, got {self.views_used}")

    @property
    def key(self) -> Tuple[str, str]:
        return (self.user_id, self.lesson_id)


@dataclass(frozen=True, slots=True)
class DepositRequest:
    """
    A student's request to top up their wallet, awaiting staff decision.

    username is denormalized for display so the request still reads correctly
    if the user record changes later.
    """
    id: str
    user_id: str
    username: str
    amount: Decimal
    created_at: datetime
    status: DepositStatus = DepositStatus.PENDING

    def __post_init__(self):
        object.__setattr__(self, 'amount', to_money(self.amount))
        if not isinstance(self.status, DepositStatus):
            object.__setattr__(self, 'status', DepositStatus(self.status))

    @property
    def is_pending(self) -> bool:
        return self.status is DepositStatus.PENDING


@dataclass(frozen=True, slots=True)
class AppState:
    """
    The aggregate root: one immutable snapshot of the whole storefront.

    current_user_id references an entry in users; it is an id rather than a
    copy so that the session always sees the latest version of the record.
    """
    users: Tuple[User, ...] = ()
    lessons: Tuple[Lesson, ...] = ()
    activity: Tuple[EntitlementRecord, ...] = ()
    deposit_requests: Tuple[DepositRequest, ...] = ()
    current_user_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'users', tuple(self.users))
        object.__setattr__(self, 'lessons', tuple(self.lessons))
        object.__setattr__(self, 'activity', tuple(self.activity))
        object.__setattr__(self, 'deposit_requests', tuple(self.deposit_requests))

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def find_user(self, user_id: Optional[str]) -> Optional[User]:
        if user_id is None:
            return None
        for user in self.users:
            if user.id == user_id:
                return user
        return None

    def get_user(self, user_id: Optional[str]) -> User:
        """
        Return the user with the given id.

        Raises:
            UserNotFound: If no such user exists.
        """
        user = self.find_user(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        return user

    def find_lesson(self, lesson_id: str) -> Optional[Lesson]:
        for lesson in self.lessons:
            if lesson.id == lesson_id:
                return lesson
        return None

    def get_lesson(self, lesson_id: str) -> Lesson:
        """
        Return the lesson with the given id.

        Raises:
            LessonNotFound: If the lesson is not in the catalog.
        """
        lesson = self.find_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFound(f"Lesson {lesson_id} not found")
        return lesson

    def find_record(self, user_id: Optional[str], lesson_id: str) -> Optional[EntitlementRecord]:
        for record in self.activity:
            if record.user_id == user_id and record.lesson_id == lesson_id:
                return record
        return None

    def find_request(self, request_id: str) -> Optional[DepositRequest]:
        for request in self.deposit_requests:
            if request.id == request_id:
                return request
        return None

    @property
    def current_user(self) -> Optional[User]:
        return self.find_user(self.current_user_id)

    # ------------------------------------------------------------------
    # Snapshot builders (return new AppState, never mutate)
    # ------------------------------------------------------------------

    def with_user(self, updated: User) -> AppState:
        """Return a new state with the user of the same id replaced."""
        return replace(self, users=tuple(updated if u.id == updated.id else u for u in self.users))

    def with_record(self, updated: EntitlementRecord) -> AppState:
        """Return a new state with the (user, lesson) record replaced."""
        return replace(self, activity=tuple(
            updated if r.key == updated.key else r for r in self.activity
        ))

    def with_request(self, updated: DepositRequest) -> AppState:
        """Return a new state with the deposit request of the same id replaced."""
        return replace(self, deposit_requests=tuple(
            updated if r.id == updated.id else r for r in self.deposit_requests
        ))

    def __repr__(self) -> str:
        return (
            f"AppState({len(self.users)} users, {len(self.lessons)} lessons, "
            f"{len(self.activity)} records, {len(self.deposit_requests)} deposits, "
            f"session={self.current_user_id})"
        )


def state_fingerprint(state: AppState) -> str:
    """
    Compute a deterministic content hash of a snapshot.

    Two snapshots with the same users, lessons, records, requests and session
    produce the same fingerprint regardless of Decimal representation.
    """
    content = _canonicalize({
        'users': [_user_fields(u) for u in state.users],
        'lessons': [_lesson_fields(l) for l in state.lessons],
        'activity': [
            (r.user_id, r.lesson_id, r.views_used, r.purchase_date) for r in state.activity
        ],
        'deposit_requests': [
            (r.id, r.user_id, r.username, r.amount, r.status, r.created_at)
            for r in state.deposit_requests
        ],
        'current_user_id': state.current_user_id,
    })
    return hashlib.sha256(content.encode()).hexdigest()[:16]


def _user_fields(user: User) -> Tuple[Any, ...]:
    return (
        user.id, user.username, user.email, user.phone, user.full_name,
        user.father_phone, user.mother_phone, user.role, user.balance,
        user.purchased_lessons,
    )


def _lesson_fields(lesson: Lesson) -> Tuple[Any, ...]:
    return (
        lesson.id, lesson.title, lesson.description, lesson.price,
        lesson.view_limit, lesson.video_ref, lesson.thumbnail_ref,
    )


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class StorefrontConfig:
    """
    Engine policy fixed at construction.

    Attributes:
        primary_owner_username: Username of the immutable primary owner.
        break_glass_credential: Emergency owner-login credential. None disables it.
        seed_owner_balance: Wallet balance given to the seeded owner account.
    """
    primary_owner_username: str = PRIMARY_OWNER_USERNAME
    break_glass_credential: Optional[str] = None
    seed_owner_balance: Decimal = Decimal("10000")

    def __post_init__(self):
        _require_text(self.primary_owner_username, "primary_owner_username", "StorefrontConfig")
        if self.break_glass_credential is not None and not self.break_glass_credential:
            raise ValueError("StorefrontConfig break_glass_credential cannot be an empty string")
        object.__setattr__(self, 'seed_owner_balance', to_money(self.seed_owner_balance))


# ============================================================================
# EXECUTION RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class ActionResult:
    """
    Result of one Storefront action.

    Truthy iff the action was applied, so callers that only need the boolean
    outcome can write `if store.purchase_lesson("l1"): ...`. On rejection,
    error holds the typed StorefrontError.
    """
    status: ExecuteResult
    action: str
    error: Optional[StorefrontError] = None

    def __bool__(self) -> bool:
        return self.status is ExecuteResult.APPLIED

    @property
    def applied(self) -> bool:
        return self.status is ExecuteResult.APPLIED

    def __repr__(self) -> str:
        if self.error is None:
            return f"ActionResult({self.action}: {self.status.value})"
        return f"ActionResult({self.action}: {self.status.value}, {type(self.error).__name__}: {self.error})"


@dataclass(frozen=True, slots=True)
class ActionRecord:
    """
    Audit entry for an applied action.

    Attributes:
        sequence_number: Monotonic position within the engine's log.
        exec_id: Unique execution identifier (sequence + timestamp).
        action: Action name, e.g. "purchase_lesson".
        actor_id: Session user at the time of the action (None if anonymous).
        origin: USER_ACTION, ADMIN_ACTION, SYSTEM or BREAK_GLASS.
        timestamp: When the action was applied.
        details: Action arguments worth keeping for audit.
        fingerprint: state_fingerprint() of the snapshot the action produced.
    """
    sequence_number: int
    exec_id: str
    action: str
    actor_id: Optional[str]
    origin: OriginType
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)
    fingerprint: str = ""

    def __repr__(self) -> str:
        return (
            f"ActionRecord(#{self.sequence_number} {self.action} "
            f"by {self.actor_id or '-'} [{self.origin.value}])"
        )

