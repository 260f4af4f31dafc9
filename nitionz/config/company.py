# nitionz/config/company.py
from __future__ import annotations

"""
Single source of truth for Nitionz company identity and money formatting.

Notification texts and API payloads read from here so the wording stays
identical across every surface.
"""

from decimal import Decimal, ROUND_HALF_UP

# -----------------------------
# Canonical fields
# -----------------------------
COMPANY_NAME = "Nitionz Pvt Ltd"
COMPANY_TAGLINE = "Fixed deposits, made simple"
COMPANY_EMAIL = "support@nitionzpvtltd.com"
COMPANY_WEBSITE = "www.nitionzpvtltd.com"

CURRENCY_CODE = "INR"
CURRENCY_SYMBOL = "₹"

# 1 crore; anything above is rejected at checkout.
MAX_ORDER_AMOUNT = Decimal("10000000")


def format_indian_number(value) -> str:
    """
    Group digits the Indian way: 12,34,567 (last three, then pairs).
    Paise are shown only when non-zero.
    """
    amount = Decimal(str(value or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    amount = abs(amount)

    whole, _, paise = f"{amount:.2f}".partition(".")
    head, tail = whole[:-3], whole[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    grouped = ",".join(groups + [tail]) if groups else tail

    if paise != "00":
        grouped = f"{grouped}.{paise}"
    return f"{sign}{grouped}"


def format_inr(value) -> str:
    return f"{CURRENCY_SYMBOL}{format_indian_number(value)}"


def company_context() -> dict:
    return {
        "name": COMPANY_NAME,
        "tagline": COMPANY_TAGLINE,
        "email": COMPANY_EMAIL,
        "website": COMPANY_WEBSITE,
        "currency": CURRENCY_CODE,
        "currencySymbol": CURRENCY_SYMBOL,
    }
