"""
storefront.py - Stateful engine and action surface

The Storefront class owns the single AppState of the system. It is the only
module that replaces state; every other module is a pure transition or read.

Key responsibilities:
    - Runs each action as snapshot -> snapshot: all effects or none
    - Resolves the acting user from the session and applies the access policy
    - Persists the full snapshot after every applied action
    - Keeps an in-memory audit trail (action_log) of applied actions
    - Converts expected failures (StorefrontError) into rejected ActionResults
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime, timezone
import hmac
import uuid
from typing import Any, Callable, Dict, List, Optional

from .core import (
    # Types
    AppState, User, Lesson, Role,
    RegistrationCandidate, LessonDefinition, StorefrontConfig,
    ActionResult, ActionRecord, ExecuteResult, OriginType,
    # Exceptions
    StorefrontError, InvalidAmount, NotAuthenticated, UserNotFound,
    # Helpers
    ZERO, to_money, state_fingerprint,
)
from . import access, catalog, deposits, entitlements, identity, wallet
from .catalog import default_state
from .content_helper import ContentHelper, StudyAids, generate_study_aids
from .persistence import SnapshotStore
from .reports import verify_invariants


Transition = Callable[[AppState], AppState]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _random_id(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex[:12]}"


class Storefront:
    """
    Lesson storefront engine with validation, persistence and audit trail.

    Every action method returns an ActionResult. Rejections carry the typed
    StorefrontError and leave state, snapshot file and action log untouched.
    Malformed input (ValueError) and persistence failures (OSError) propagate.

    Thread Safety:
        Not thread-safe. One Storefront per process is the intended use.

    Example:
        store = Storefront(store=SnapshotStore("storefront.json"))
        store.register(RegistrationCandidate("ahmed", "ahmed@x.com", "0100"))
        store.request_deposit(100)
        store.login("nour@gmail.com")
        store.process_deposit(store.state.deposit_requests[-1].id, approve=True)
    """

    def __init__(
        self,
        config: Optional[StorefrontConfig] = None,
        store: Optional[SnapshotStore] = None,
        content_helper: Optional[ContentHelper] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[str], str]] = None,
        verbose: bool = True,
    ):
        """
        Create a storefront.

        Args:
            config: Engine policy (default: StorefrontConfig())
            store: Snapshot file; loaded if it exists, written after each action
            content_helper: Study-aid generator (None disables study aids)
            clock: Returns the current time (default: UTC wall clock)
            id_factory: Maps a prefix ("u", "l", "dr") to a fresh id
            verbose: Print one line per action outcome (default: True)
        """
        self.config = config or StorefrontConfig()
        self.store = store
        self.content_helper = content_helper
        self._clock = clock or _utc_now
        self._id_factory = id_factory or _random_id
        self.verbose = verbose
        self.action_log: List[ActionRecord] = []
        self._next_sequence: int = 0

        loaded = store.load() if store is not None else None
        self._state: AppState = loaded if loaded is not None else default_state(self.config)

    # ========================================================================
    # READ SURFACE
    # ========================================================================

    @property
    def state(self) -> AppState:
        """The current snapshot. Immutable; safe to hold on to."""
        return self._state

    @property
    def current_user(self) -> Optional[User]:
        return self._state.current_user

    @property
    def owner_username(self) -> str:
        return self.config.primary_owner_username

    def can_consume(self, lesson_id: str) -> bool:
        return entitlements.can_consume(self._state, self._state.current_user_id, lesson_id)

    def views_remaining(self, lesson_id: str) -> int:
        return entitlements.views_remaining(self._state, self._state.current_user_id, lesson_id)

    def open_lesson(self, lesson_id: str) -> PlaybackSession:
        """Start a playback session; the view is counted on the first play()."""
        return PlaybackSession(self, lesson_id)

    def study_aids(self, lesson_id: str) -> StudyAids:
        """
        Summary and quiz for a lesson. Never fails because of the helper.

        Raises:
            LessonNotFound: If the lesson is not in the catalog.
        """
        lesson = self._state.get_lesson(lesson_id)
        return generate_study_aids(self.content_helper, lesson.title, lesson.description)

    def verify_invariants(self) -> Dict[str, Any]:
        result = verify_invariants(self._state)
        if self.verbose and not result['valid']:
            print(f"Invariant violations found: {result['violations']}")
        return result

    # ========================================================================
    # SESSION ACTIONS
    # ========================================================================

    def login(self, identifier: str, credential: Optional[str] = None) -> ActionResult:
        """
        Log in by email or phone.

        The credential is ignored unless it is the configured
        break_glass_credential and the identifier (email, phone or username)
        belongs to the primary owner. Only then does the call log in as the
        primary owner with origin BREAK_GLASS; anything else is an ordinary
        lookup by email or phone.
        """
        if self._is_break_glass(identifier, credential):
            return self._run(
                "login",
                self._break_glass_login,
                origin=OriginType.BREAK_GLASS,
                details={'identifier': identifier},
                session_action=True,
            )
        return self._run(
            "login",
            lambda s: identity.login(s, identifier),
            details={'identifier': identifier},
            session_action=True,
        )

    def _is_break_glass(self, identifier: str, credential: Optional[str]) -> bool:
        expected = self.config.break_glass_credential
        if expected is None or credential is None:
            return False
        if not hmac.compare_digest(credential.encode(), expected.encode()):
            return False
        owner = identity.find_by_username(self._state, self.owner_username)
        return owner is not None and identifier in (owner.email, owner.phone, owner.username)

    def _break_glass_login(self, state: AppState) -> AppState:
        owner = identity.find_by_username(state, self.owner_username)
        if owner is None:
            raise UserNotFound(f"Primary owner @{self.owner_username} not found")
        if self.verbose:
            print(f"⚠️  BREAK-GLASS LOGIN: @{owner.username}")
        return replace(state, current_user_id=owner.id)

    def register(self, candidate: RegistrationCandidate) -> ActionResult:
        user_id = self._id_factory("u")
        return self._run(
            "register",
            lambda s: identity.register(s, candidate, user_id),
            details={'user_id': user_id, 'username': candidate.username},
            session_action=True,
        )

    def logout(self) -> ActionResult:
        return self._run("logout", identity.logout)

    # ========================================================================
    # WALLET AND DEPOSIT ACTIONS
    # ========================================================================

    def request_deposit(self, amount: Any) -> ActionResult:
        """
        File a deposit request for the session user.

        Rejected with NotAuthenticated when nobody is logged in and with
        InvalidAmount when amount <= 0 or too large to hold at cent precision.
        """
        try:
            money = to_money(amount)
        except InvalidAmount as e:
            return self._reject("request_deposit", e)
        request_id = self._id_factory("dr")

        def transition(state: AppState) -> AppState:
            user = state.current_user
            if user is None:
                raise NotAuthenticated("Deposit requests require a logged-in user")
            if money <= ZERO:
                raise InvalidAmount(f"Deposit amount must be positive, got {money}")
            return deposits.request_deposit(state, user.id, money, request_id, self._clock())

        return self._run(
            "request_deposit", transition,
            details={'request_id': request_id, 'amount': money},
        )

    def process_deposit(self, request_id: str, approve: bool) -> ActionResult:
        def transition(state: AppState) -> AppState:
            access.require_staff(state.current_user)
            return deposits.process_deposit(state, request_id, approve)

        return self._run(
            "process_deposit", transition,
            origin=OriginType.ADMIN_ACTION,
            details={'request_id': request_id, 'approve': bool(approve)},
        )

    def adjust_balance(self, user_id: str, delta: Any) -> ActionResult:
        """Staff balance edit. Clamps at zero instead of failing."""
        try:
            money = to_money(delta)
        except InvalidAmount as e:
            return self._reject("adjust_balance", e)

        def transition(state: AppState) -> AppState:
            access.require_staff(state.current_user)
            return wallet.adjust(state, user_id, money)

        return self._run(
            "adjust_balance", transition,
            origin=OriginType.ADMIN_ACTION,
            details={'user_id': user_id, 'delta': money},
        )

    # ========================================================================
    # USER MANAGEMENT ACTIONS
    # ========================================================================

    def change_user_role(self, user_id: str, role: Role) -> ActionResult:
        role = Role(role)
        return self._run(
            "change_user_role",
            lambda s: access.change_role(s, s.current_user, user_id, role, self.owner_username),
            origin=OriginType.ADMIN_ACTION,
            details={'user_id': user_id, 'role': role},
        )

    def remove_user(self, user_id: str) -> ActionResult:
        return self._run(
            "remove_user",
            lambda s: access.remove_user(s, s.current_user, user_id, self.owner_username),
            origin=OriginType.ADMIN_ACTION,
            details={'user_id': user_id},
        )

    # ========================================================================
    # ENTITLEMENT ACTIONS
    # ========================================================================

    def purchase_lesson(self, lesson_id: str) -> ActionResult:
        def transition(state: AppState) -> AppState:
            user = state.current_user
            if user is None:
                raise NotAuthenticated("Purchases require a logged-in user")
            return entitlements.purchase(state, user.id, lesson_id, self._clock())

        return self._run("purchase_lesson", transition, details={'lesson_id': lesson_id})

    def record_consumption(self, lesson_id: str) -> ActionResult:
        """
        Count one view for the session user without checking the quota.

        Callers are expected to check can_consume() first; consume_lesson()
        does both.
        """
        return self._run(
            "record_consumption",
            lambda s: entitlements.record_consumption(s, s.current_user_id, lesson_id),
            details={'lesson_id': lesson_id},
        )

    def consume_lesson(self, lesson_id: str) -> ActionResult:
        def transition(state: AppState) -> AppState:
            if state.current_user_id is None:
                raise NotAuthenticated("Watching a lesson requires a logged-in user")
            return entitlements.consume(state, state.current_user_id, lesson_id)

        return self._run("consume_lesson", transition, details={'lesson_id': lesson_id})

    # ========================================================================
    # CATALOG ACTIONS
    # ========================================================================

    def add_lesson(self, definition: LessonDefinition) -> ActionResult:
        lesson_id = self._id_factory("l")

        def transition(state: AppState) -> AppState:
            access.require_staff(state.current_user)
            return catalog.add_lesson(state, definition, lesson_id)

        return self._run(
            "add_lesson", transition,
            origin=OriginType.ADMIN_ACTION,
            details={'lesson_id': lesson_id, 'title': definition.title},
        )

    def remove_lesson(self, lesson_id: str) -> ActionResult:
        def transition(state: AppState) -> AppState:
            access.require_staff(state.current_user)
            return catalog.remove_lesson(state, lesson_id)

        return self._run(
            "remove_lesson", transition,
            origin=OriginType.ADMIN_ACTION,
            details={'lesson_id': lesson_id},
        )

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _generate_exec_id(self, sequence: int, timestamp: datetime) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{sequence:012d}:{timestamp_micros}
        """
        micros = int(timestamp.timestamp() * 1_000_000)
        return f"exec:{sequence:012d}:{micros}"

    def _reject(self, action: str, error: StorefrontError) -> ActionResult:
        if self.verbose:
            print(f"✗ REJECTED: {action}: {type(error).__name__}: {error}")
        return ActionResult(ExecuteResult.REJECTED, action, error)

    def _run(
        self,
        action: str,
        transition: Transition,
        origin: OriginType = OriginType.USER_ACTION,
        details: Optional[Dict[str, Any]] = None,
        session_action: bool = False,
    ) -> ActionResult:
        """
        Apply a transition to the current snapshot.

        The new snapshot is saved before it replaces the in-memory state, so a
        failed write leaves the engine exactly as it was. A transition that
        returns the same snapshot is applied but neither saved nor logged.

        The actor is the session user before the action, falling back to the
        one after it. Session actions (login, register) are credited to the
        user they log in.
        """
        before = self._state
        try:
            after = transition(before)
        except StorefrontError as e:
            return self._reject(action, e)

        if after is before:
            if self.verbose:
                print(f"✓ APPLIED: {action} (no change)")
            return ActionResult(ExecuteResult.APPLIED, action)

        if self.store is not None:
            self.store.save(after)

        if session_action:
            actor_id = after.current_user_id
        else:
            actor_id = before.current_user_id or after.current_user_id

        timestamp = self._clock()
        sequence = self._next_sequence
        record = ActionRecord(
            sequence_number=sequence,
            exec_id=self._generate_exec_id(sequence, timestamp),
            action=action,
            actor_id=actor_id,
            origin=origin,
            timestamp=timestamp,
            details=dict(details or {}),
            fingerprint=state_fingerprint(after),
        )
        self._next_sequence += 1
        self.action_log.append(record)
        self._state = after

        if self.verbose:
            actor = after.find_user(record.actor_id) or before.find_user(record.actor_id)
            who = f"@{actor.username}" if actor is not None else "anonymous"
            parts = [action] + [f"{k}={v}" for k, v in record.details.items()]
            print(f"✓ APPLIED: {' '.join(parts)} by {who}")
        return ActionResult(ExecuteResult.APPLIED, action)

    def __repr__(self) -> str:
        return f"Storefront({self._state!r}, {len(self.action_log)} actions)"


class PlaybackSession:
    """
    One viewing of a lesson by the session user.

    The first successful play() counts a view; later calls in the same
    session return the same result without counting again.

    Example:
        session = store.open_lesson("l1")
        if session.allowed:
            session.play()
    """

    def __init__(self, storefront: Storefront, lesson_id: str):
        self.storefront = storefront
        self.lesson_id = lesson_id
        self.user_id = storefront.state.current_user_id
        self._result: Optional[ActionResult] = None

    @property
    def lesson(self) -> Optional[Lesson]:
        return self.storefront.state.find_lesson(self.lesson_id)

    @property
    def allowed(self) -> bool:
        return entitlements.can_consume(self.storefront.state, self.user_id, self.lesson_id)

    @property
    def started(self) -> bool:
        return self._result is not None

    def play(self) -> ActionResult:
        """
        Count this session's view if it has not been counted yet.

        A rejected attempt does not start the session.
        """
        if self._result is not None:
            return self._result
        if self.storefront.state.current_user_id != self.user_id:
            return ActionResult(
                ExecuteResult.REJECTED, "consume_lesson",
                NotAuthenticated("The session user changed since the lesson was opened"),
            )
        result = self.storefront.consume_lesson(self.lesson_id)
        if result.applied:
            self._result = result
        return result

    def __repr__(self) -> str:
        status = "started" if self.started else "not started"
        return f"PlaybackSession({self.lesson_id} for {self.user_id or '-'}, {status})"
