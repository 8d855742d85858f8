"""
persistence.py - Full-snapshot persistence

The whole AppState is written as one flat JSON text document after every
applied action and read back on start-up. There is no incremental format:
each save replaces the previous file atomically.

Document layout:

    {
      "format_version": 1,
      "fingerprint": "<state_fingerprint()>",
      "state": {
        "users": [...], "lessons": [...], "activity": [...],
        "deposit_requests": [...], "current_user_id": "u0" | null
      }
    }

Decimals are stored as canonical strings ("50", "12.5"), datetimes as
ISO-8601 strings. The fingerprint is recomputed on load; a mismatch means the
file was edited or truncated and raises SnapshotError.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
import json
import os
from pathlib import Path
import tempfile
from typing import Any, Dict, Optional, Union

from .core import (
    AppState, DepositRequest, EntitlementRecord, Lesson, User,
    DepositStatus, Role,
    _normalize_decimal, state_fingerprint,
)


SNAPSHOT_FORMAT_VERSION = 1


class SnapshotError(Exception):
    """Raised when a snapshot cannot be decoded into a valid AppState."""
    pass


# ============================================================================
# ENCODING
# ============================================================================

def _user_to_dict(user: User) -> Dict[str, Any]:
    return {
        'id': user.id,
        'username': user.username,
        'email': user.email,
        'phone': user.phone,
        'full_name': user.full_name,
        'father_phone': user.father_phone,
        'mother_phone': user.mother_phone,
        'role': user.role.value,
        'balance': _normalize_decimal(user.balance),
        'purchased_lessons': list(user.purchased_lessons),
    }


def _lesson_to_dict(lesson: Lesson) -> Dict[str, Any]:
    return {
        'id': lesson.id,
        'title': lesson.title,
        'description': lesson.description,
        'price': _normalize_decimal(lesson.price),
        'view_limit': lesson.view_limit,
        'video_ref': lesson.video_ref,
        'thumbnail_ref': lesson.thumbnail_ref,
    }


def _record_to_dict(record: EntitlementRecord) -> Dict[str, Any]:
    return {
        'user_id': record.user_id,
        'lesson_id': record.lesson_id,
        'views_used': record.views_used,
        'purchase_date': record.purchase_date.isoformat(),
    }


def _request_to_dict(request: DepositRequest) -> Dict[str, Any]:
    return {
        'id': request.id,
        'user_id': request.user_id,
        'username': request.username,
        'amount': _normalize_decimal(request.amount),
        'status': request.status.value,
        'created_at': request.created_at.isoformat(),
    }


def to_snapshot_dict(state: AppState) -> Dict[str, Any]:
    """Convert a snapshot to plain JSON-compatible data."""
    return {
        'format_version': SNAPSHOT_FORMAT_VERSION,
        'fingerprint': state_fingerprint(state),
        'state': {
            'users': [_user_to_dict(u) for u in state.users],
            'lessons': [_lesson_to_dict(l) for l in state.lessons],
            'activity': [_record_to_dict(r) for r in state.activity],
            'deposit_requests': [_request_to_dict(r) for r in state.deposit_requests],
            'current_user_id': state.current_user_id,
        },
    }


def dumps(state: AppState) -> str:
    """Serialize a snapshot to JSON text."""
    return json.dumps(to_snapshot_dict(state), indent=2, ensure_ascii=False)


# ============================================================================
# DECODING
# ============================================================================

def _user_from_dict(raw: Dict[str, Any]) -> User:
    return User(
        id=raw['id'],
        username=raw['username'],
        email=raw['email'],
        phone=raw['phone'],
        full_name=raw.get('full_name', ''),
        father_phone=raw.get('father_phone', ''),
        mother_phone=raw.get('mother_phone', ''),
        role=Role(raw['role']),
        balance=Decimal(raw['balance']),
        purchased_lessons=tuple(raw.get('purchased_lessons', ())),
    )


def _lesson_from_dict(raw: Dict[str, Any]) -> Lesson:
    return Lesson(
        id=raw['id'],
        title=raw['title'],
        description=raw.get('description', ''),
        price=Decimal(raw['price']),
        view_limit=raw['view_limit'],
        video_ref=raw.get('video_ref', ''),
        thumbnail_ref=raw.get('thumbnail_ref', ''),
    )


def _record_from_dict(raw: Dict[str, Any]) -> EntitlementRecord:
    return EntitlementRecord(
        user_id=raw['user_id'],
        lesson_id=raw['lesson_id'],
        views_used=raw['views_used'],
        purchase_date=datetime.fromisoformat(raw['purchase_date']),
    )


def _request_from_dict(raw: Dict[str, Any]) -> DepositRequest:
    return DepositRequest(
        id=raw['id'],
        user_id=raw['user_id'],
        username=raw['username'],
        amount=Decimal(raw['amount']),
        status=DepositStatus(raw['status']),
        created_at=datetime.fromisoformat(raw['created_at']),
    )


def from_snapshot_dict(data: Dict[str, Any]) -> AppState:
    """
    Rebuild a snapshot from data produced by to_snapshot_dict().

    Raises:
        SnapshotError: On an unknown format version, missing or malformed
            fields, or a fingerprint mismatch.
    """
    try:
        version = data['format_version']
        if version != SNAPSHOT_FORMAT_VERSION:
            raise SnapshotError(f"Unsupported snapshot format_version {version!r}")
        raw = data['state']
        state = AppState(
            users=tuple(_user_from_dict(u) for u in raw['users']),
            lessons=tuple(_lesson_from_dict(l) for l in raw['lessons']),
            activity=tuple(_record_from_dict(r) for r in raw['activity']),
            deposit_requests=tuple(_request_from_dict(r) for r in raw['deposit_requests']),
            current_user_id=raw.get('current_user_id'),
        )
        expected = data['fingerprint']
    except SnapshotError:
        raise
    except (KeyError, TypeError, ValueError, ArithmeticError) as e:
        raise SnapshotError(f"Malformed snapshot: {e!r}") from e

    actual = state_fingerprint(state)
    if actual != expected:
        raise SnapshotError(f"Snapshot fingerprint mismatch: stored {expected}, computed {actual}")
    return state


def loads(text: str) -> AppState:
    """Parse JSON text produced by dumps()."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SnapshotError(f"Snapshot is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SnapshotError("Snapshot root must be a JSON object")
    return from_snapshot_dict(data)


# ============================================================================
# FILE STORE
# ============================================================================

class SnapshotStore:
    """
    A snapshot file on disk.

    save() writes to a temporary file in the same directory and renames it
    over the target, so readers see either the old or the new snapshot.

    Example:
        store = SnapshotStore("storefront.json")
        state = store.load() or default_state()
        store.save(state)
    """

    def __init__(self, path: Union[str, os.PathLike]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Optional[AppState]:
        """Return the saved snapshot, or None if there is no file yet."""
        if not self.exists():
            return None
        return loads(self.path.read_text(encoding="utf-8"))

    def save(self, state: AppState) -> None:
        text = dumps(state)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def clear(self) -> None:
        """Delete the snapshot file so the next start seeds a default state."""
        if self.exists():
            self.path.unlink()

    def __repr__(self) -> str:
        return f"SnapshotStore({str(self.path)!r})"
