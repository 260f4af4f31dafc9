# nitionz/utils/passwords.py
"""
Credentials for investor and admin accounts.

Hashes are Werkzeug scrypt strings stored in ``User.password_hash``. The
lockout helpers work on the ``failed_login_attempts`` / ``locked_until``
columns; callers commit.
"""
from __future__ import annotations

import math
import re
from datetime import datetime, timedelta

from werkzeug.security import check_password_hash, generate_password_hash

HASH_METHOD = "scrypt"
MIN_LENGTH = 10

MAX_FAILED_LOGINS = 5
LOCKOUT = timedelta(minutes=15)

_REQUIRED_CLASSES = (
    (re.compile(r"[A-Z]"), "one uppercase letter"),
    (re.compile(r"[a-z]"), "one lowercase letter"),
    (re.compile(r"\d"), "one number"),
    (re.compile(r"[^\w\s]"), "one symbol (e.g. !@#$)"),
)


def hash_password(plain: str) -> str:
    if not isinstance(plain, str) or not plain.strip():
        raise ValueError("Password must be a non-empty string.")
    return generate_password_hash(plain, method=HASH_METHOD)


def password_matches(password_hash: str | None, plain: str | None) -> bool:
    if not password_hash or not plain:
        return False
    return check_password_hash(password_hash, plain)


def policy_error(plain) -> str | None:
    """What is wrong with a new password, or None if it is acceptable."""
    if not isinstance(plain, str) or not plain.strip():
        return "Password cannot be empty."

    candidate = plain.strip()
    if len(candidate) < MIN_LENGTH:
        return f"Password must be at least {MIN_LENGTH} characters."
    for pattern, label in _REQUIRED_CLASSES:
        if not pattern.search(candidate):
            return f"Include at least {label}."
    return None


# =========================
# Login lockout
# =========================
def lockout_minutes_left(user, now: datetime) -> int:
    """Whole minutes (rounded up) until a locked account may try again; 0 if not locked."""
    if not user.locked_until or user.locked_until <= now:
        return 0
    return max(1, math.ceil((user.locked_until - now).total_seconds() / 60))


def record_failed_login(user, now: datetime) -> bool:
    """Count one failure. Returns True when this failure locks the account."""
    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
    if user.failed_login_attempts < MAX_FAILED_LOGINS:
        return False
    user.failed_login_attempts = 0
    user.locked_until = now + LOCKOUT
    return True


def clear_failed_logins(user) -> bool:
    """Reset the counters after a good password. Returns True if anything changed."""
    if not user.failed_login_attempts and user.locked_until is None:
        return False
    user.failed_login_attempts = 0
    user.locked_until = None
    return True
