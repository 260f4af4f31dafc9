# nitionz/config/__init__.py
from __future__ import annotations

"""
nitionz.config is a PACKAGE.

- Company identity + money formatting live in: nitionz.config.company
- Runtime settings live in: nitionz.settings
"""

from .company import company_context, format_inr

__all__ = ["company_context", "format_inr"]
