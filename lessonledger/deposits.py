"""
deposits.py - Deposit Workflow

The request/approval state machine through which a student's balance grows:

    PENDING ──approve──▶ APPROVED   (wallet credited via wallet.adjust)
       │
       └────reject────▶ REJECTED   (no balance change)

APPROVED and REJECTED are terminal. Processing a request twice fails the
second time with InvalidTransition and changes nothing.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Any, List

from .core import (
    AppState, DepositRequest, DepositStatus,
    InvalidTransition, NotAuthenticated, RequestNotFound,
    to_money,
)
from .wallet import adjust


def request_deposit(
    state: AppState,
    user_id: str,
    amount: Any,
    request_id: str,
    timestamp: datetime,
) -> AppState:
    """
    File a new PENDING deposit request.

    The amount is not capped; rejecting non-positive amounts is the job of
    the action boundary (Storefront.request_deposit).

    Args:
        state: Current snapshot
        user_id: Requesting user (normally the session user)
        amount: Requested top-up
        request_id: Freshly generated id
        timestamp: Creation time

    Raises:
        NotAuthenticated: If no user is logged in.
        UserNotFound: If user_id matches no user.
        ValueError: If request_id is already in use.
    """
    if state.current_user_id is None:
        raise NotAuthenticated("Deposit requests require a logged-in user")
    user = state.get_user(user_id)
    if state.find_request(request_id) is not None:
        raise ValueError(f"Deposit request id {request_id} already in use")

    request = DepositRequest(
        id=request_id,
        user_id=user.id,
        username=user.username,
        amount=to_money(amount),
        created_at=timestamp,
        status=DepositStatus.PENDING,
    )
    return replace(state, deposit_requests=state.deposit_requests + (request,))


def process_deposit(state: AppState, request_id: str, approve: bool) -> AppState:
    """
    Approve or reject a PENDING request.

    Approval credits the requester with +amount and marks the request
    APPROVED in the same snapshot. Rejection only changes the status.

    Raises:
        RequestNotFound: If request_id does not exist.
        InvalidTransition: If the request is already APPROVED or REJECTED.
        UserNotFound: If approving and the requester no longer exists.
    """
    request = state.find_request(request_id)
    if request is None:
        raise RequestNotFound(f"Deposit request {request_id} not found")
    if not request.is_pending:
        raise InvalidTransition(
            f"Deposit request {request_id} is already {request.status.value}"
        )

    if approve:
        state = adjust(state, request.user_id, request.amount)
        return state.with_request(replace(request, status=DepositStatus.APPROVED))
    return state.with_request(replace(request, status=DepositStatus.REJECTED))


def pending_requests(state: AppState) -> List[DepositRequest]:
    """All requests awaiting a decision, oldest first."""
    return [r for r in state.deposit_requests if r.is_pending]


def requests_for_user(state: AppState, user_id: str, limit: int = 5) -> List[DepositRequest]:
    """A user's most recent requests, newest first."""
    mine = [r for r in state.deposit_requests if r.user_id == user_id]
    mine.sort(key=lambda r: r.created_at, reverse=True)
    return mine[:limit]
