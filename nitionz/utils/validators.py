# nitionz/utils/validators.py
"""
Input cleaning and format checks shared by the services.

Parsers return None on bad input (callers decide whether that is an error);
format checks return bool.
"""

from __future__ import annotations

import re
import uuid
from datetime import date
from decimal import Decimal, InvalidOperation

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^\+?[\d\-()]{10,15}$")
_PAN_RE = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
_AADHAAR_RE = re.compile(r"^\d{12}$")
_IFSC_RE = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")

MAX_TEXT_LEN = 1000


def clean_str(value) -> str:
    return str(value or "").strip()


def sanitize_input(value, maxlen: int = MAX_TEXT_LEN) -> str:
    """Trim, drop angle brackets, cap length."""
    return re.sub(r"[<>]", "", clean_str(value))[:maxlen]


# ======================
# Parsers
# ======================
def parse_decimal(val) -> Decimal | None:
    try:
        if val is None or str(val).strip() == "":
            return None
        d = Decimal(str(val).strip())
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def parse_int(val) -> int | None:
    try:
        if val is None or str(val).strip() == "":
            return None
        return int(val)
    except (TypeError, ValueError):
        return None


def parse_date(val) -> date | None:
    if isinstance(val, date):
        return val
    try:
        if not val:
            return None
        return date.fromisoformat(str(val).strip()[:10])
    except (TypeError, ValueError):
        return None


def parse_uuid(val) -> uuid.UUID | None:
    if isinstance(val, uuid.UUID):
        return val
    try:
        s = clean_str(val)
        if not s:
            return None
        return uuid.UUID(s)
    except (TypeError, ValueError, AttributeError):
        return None


def parse_bool(val, default: bool = False) -> bool:
    if val is None:
        return default
    if isinstance(val, bool):
        return val
    return str(val).strip().lower() in ("1", "true", "yes", "on")


# ======================
# Format checks
# ======================
def validate_email(email: str) -> bool:
    email = clean_str(email)
    return bool(_EMAIL_RE.match(email)) and len(email) <= 254


def validate_phone(phone: str) -> bool:
    return bool(_PHONE_RE.match(re.sub(r"\s", "", clean_str(phone))))


def validate_pan(pan: str) -> bool:
    return bool(_PAN_RE.match(clean_str(pan).upper()))


def validate_aadhaar(aadhaar: str) -> bool:
    return bool(_AADHAAR_RE.match(re.sub(r"\s", "", clean_str(aadhaar))))


def validate_ifsc(code: str) -> bool:
    return bool(_IFSC_RE.match(clean_str(code).upper()))
