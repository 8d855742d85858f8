"""
wallet.py - Wallet Engine

Two balance primitives with deliberately different failure semantics:

    adjust(state, user_id, delta)   balance = max(0, balance + delta)
        Clamping. Used for staff balance edits and deposit approvals. A
        negative delta larger than the balance floors at zero.

    debit(state, user_id, amount)   balance = balance - amount
        Hard-failing. Used by purchases. Raises InsufficientFunds and leaves
        the state untouched when balance < amount.

Both keep the User invariant balance >= 0.
"""

from __future__ import annotations
from dataclasses import replace
from decimal import Decimal
from typing import Any

from .core import (
    AppState, InsufficientFunds,
    ZERO, to_money,
)


def adjust(state: AppState, user_id: str, delta: Any) -> AppState:
    """
    Add delta to a user's balance, flooring the result at zero.

    Args:
        state: Current snapshot
        user_id: Wallet owner
        delta: Signed amount (converted to cents)

    Returns:
        New snapshot with the updated balance.

    Raises:
        UserNotFound: If user_id matches no user.

    Example:
        # balance 30, delta -50 -> balance 0 (no error)
        state = adjust(state, "u1", Decimal("-50"))
    """
    user = state.get_user(user_id)
    new_balance = max(ZERO, user.balance + to_money(delta))
    if new_balance == user.balance:
        return state
    return state.with_user(replace(user, balance=new_balance))


def debit(state: AppState, user_id: str, amount: Any) -> AppState:
    """
    Remove amount from a user's balance, refusing to overdraw.

    Raises:
        UserNotFound: If user_id matches no user.
        InsufficientFunds: If the balance is below amount.
        ValueError: If amount is negative.
    """
    amount = to_money(amount)
    if amount < ZERO:
        raise ValueError(f"Debit amount must be non-negative, got {amount}")
    user = state.get_user(user_id)
    if user.balance < amount:
        raise InsufficientFunds(
            f"@{user.username} has {user.balance}, needs {amount}"
        )
    if amount == ZERO:
        return state
    return state.with_user(replace(user, balance=user.balance - amount))


def balance_of(state: AppState, user_id: str) -> Decimal:
    """Return a user's balance. Raises UserNotFound for unknown ids."""
    return state.get_user(user_id).balance
