"""
lessonledger - Ledger & Entitlement Engine for a metered-lesson storefront

Wallet balances, deposit approvals, lesson purchases and per-lesson view
quotas, held in one immutable snapshot and changed only through validated
actions.

Usage:
    from lessonledger import Storefront, SnapshotStore, RegistrationCandidate

    store = Storefront(store=SnapshotStore("storefront.json"))

    # A student registers and asks for credit
    store.register(RegistrationCandidate("ahmed", "ahmed@mail.com", "01000000001"))
    store.request_deposit(100)
    request_id = store.state.deposit_requests[-1].id

    # The owner approves it
    store.login("nour@gmail.com")
    store.process_deposit(request_id, approve=True)

    # The student buys and watches a lesson
    store.login("ahmed@mail.com")
    store.purchase_lesson("l1")
    session = store.open_lesson("l1")
    if session.allowed:
        session.play()
"""

# Core types
from .core import (
    Role,
    DepositStatus,
    ExecuteResult,
    OriginType,
    User,
    Lesson,
    EntitlementRecord,
    DepositRequest,
    AppState,
    RegistrationCandidate,
    LessonDefinition,
    StorefrontConfig,
    ActionResult,
    ActionRecord,
    StorefrontError,
    DuplicateIdentity,
    PermissionDenied,
    NotAuthenticated,
    InsufficientFunds,
    AlreadyOwned,
    LessonNotFound,
    UserNotFound,
    RequestNotFound,
    InvalidTransition,
    ViewLimitExceeded,
    NotEntitled,
    InvalidAmount,
    PRIMARY_OWNER_USERNAME,
    to_money,
    state_fingerprint,
)

# Identity and access
from .identity import (
    is_primary_owner,
    find_by_identifier,
    find_by_username,
    register,
    login,
    logout,
)
from .access import (
    ROLE_PRIORITY,
    is_staff,
    require_staff,
    check_user_management,
    change_role,
    remove_user,
    rank_users,
)

# Money
from .wallet import adjust, debit, balance_of
from .deposits import (
    request_deposit,
    process_deposit,
    pending_requests,
    requests_for_user,
)

# Catalog and entitlements
from .catalog import (
    SEED_LESSONS,
    placeholder_thumbnail,
    add_lesson,
    remove_lesson,
    default_state,
)
from .entitlements import (
    purchase,
    can_consume,
    record_consumption,
    consume,
    views_remaining,
)

# Reports
from .reports import (
    student_count,
    total_revenue,
    purchases_by_lesson,
    search_users,
    verify_invariants,
)

# Persistence
from .persistence import (
    SnapshotError,
    SnapshotStore,
    dumps,
    loads,
)

# Study aids
from .content_helper import (
    FALLBACK_SUMMARY,
    QuizItem,
    StudyAids,
    ContentHelper,
    StaticContentHelper,
    GeminiContentHelper,
    generate_study_aids,
    parse_quiz,
)

# Engine
from .storefront import Storefront, PlaybackSession


__all__ = [
    # Core
    'Role', 'DepositStatus', 'ExecuteResult', 'OriginType',
    'User', 'Lesson', 'EntitlementRecord', 'DepositRequest', 'AppState',
    'RegistrationCandidate', 'LessonDefinition', 'StorefrontConfig',
    'ActionResult', 'ActionRecord',
    'StorefrontError', 'DuplicateIdentity', 'PermissionDenied', 'NotAuthenticated',
    'InsufficientFunds', 'AlreadyOwned', 'LessonNotFound', 'UserNotFound',
    'RequestNotFound', 'InvalidTransition', 'ViewLimitExceeded', 'NotEntitled',
    'InvalidAmount',
    'PRIMARY_OWNER_USERNAME', 'to_money', 'state_fingerprint',
    # Identity and access
    'is_primary_owner', 'find_by_identifier', 'find_by_username',
    'register', 'login', 'logout',
    'ROLE_PRIORITY', 'is_staff', 'require_staff', 'check_user_management',
    'change_role', 'remove_user', 'rank_users',
    # Money
    'adjust', 'debit', 'balance_of',
    'request_deposit', 'process_deposit', 'pending_requests', 'requests_for_user',
    # Catalog and entitlements
    'SEED_LESSONS', 'placeholder_thumbnail', 'add_lesson', 'remove_lesson', 'default_state',
    'purchase', 'can_consume', 'record_consumption', 'consume', 'views_remaining',
    # Reports
    'student_count', 'total_revenue', 'purchases_by_lesson', 'search_users',
    'verify_invariants',
    # Persistence
    'SnapshotError', 'SnapshotStore', 'dumps', 'loads',
    # Study aids
    'FALLBACK_SUMMARY', 'QuizItem', 'StudyAids', 'ContentHelper',
    'StaticContentHelper', 'GeminiContentHelper', 'generate_study_aids', 'parse_quiz',
    # Engine
    'Storefront', 'PlaybackSession',
]

__version__ = '1.0.0'
