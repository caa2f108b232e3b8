"""
Helper functions for PII masking.

Bank account numbers and email addresses appear in withdrawal results,
emails and logs. These helpers produce the masked forms shown to users
and written to logs.

Usage:
    from toolkit.helpers import mask_account_number, mask_email

    mask_account_number("0123456789")  # "••6789"
    mask_email("ada@example.com")  # "a***@example.com"
"""

from __future__ import annotations

import re

MASK_BULLETS = "••"


def mask_account_number(account_number: str | None, prefix: str = "") -> str:
    """
    Mask a bank account number, keeping the last 4 digits.

    Args:
        account_number: Account number (non-digits are ignored)
        prefix: Optional label placed before the masked number (e.g., "Bank ")

    Returns:
        Masked number (e.g., "••6789"), or just the bullets if fewer than
        4 digits are available

    Example:
        mask_account_number("0123456789", prefix="Bank ")  # "Bank ••6789"
    """
    digits = re.sub(r"\D", "", account_number or "")
    if len(digits) < 4:
        return f"{prefix}{MASK_BULLETS}"
    return f"{prefix}{MASK_BULLETS}{digits[-4:]}"


def mask_email(email: str) -> str:
    """
    Mask email for display.

    Keeps first character and domain visible.

    Returns:
        Masked email (e.g., "j***@example.com")
    """
    if not email or "@" not in email:
        return "***"

    local, domain = email.rsplit("@", 1)

    if len(local) > 1:
        masked_local = local[0] + "***"
    else:
        masked_local = "***"

    return f"{masked_local}@{domain}"
