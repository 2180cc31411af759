"""
phone.py — Canonical phone numbers for SMS delivery.

Every number stored or dialled goes through ``normalize`` so that one
subscriber has exactly one representation: the deployment's default
country prefix followed by the subscriber digits.

═══════════════════════════════════════════════════════════════════════════
COUNTRY CODE STRIPPING
═══════════════════════════════════════════════════════════════════════════

ITU-T E.164 country calling codes form a prefix-free set, so the code at
the front of "+<digits>" can be read greedily:

    1 digit    1 (NANP), 7 (RU/KZ)
    2 digits   20, 27, 30-34, 36, 39, 40, 41, 43-49, 51-58, 60-66,
               81, 82, 84, 86, 90-95, 98
    3 digits   everything else

    "+44 123"        → code 44,  subscriber 123         → "+91123"
    "+91 98765 43210" → code 91, subscriber 9876543210  → "+919876543210"
    "098765 43210"   → no code, leading zero dropped    → "+919876543210"
"""

from __future__ import annotations

import re
from typing import Any

from backend.app.core.errors import InvalidPhoneError

_FORMATTING_CHARS = re.compile(r"[\s\-.()]")
_DIGITS = re.compile(r"^\d+$")
_PREFIX = re.compile(r"^\+\d{1,3}$")

_ONE_DIGIT_CODES = frozenset({"1", "7"})
_TWO_DIGIT_CODES = frozenset(
    {"20", "27", "30", "31", "32", "33", "34", "36", "39", "40", "41"}
    | {str(c) for c in range(43, 50)}
    | {str(c) for c in range(51, 59)}
    | {str(c) for c in range(60, 67)}
    | {"81", "82", "84", "86"}
    | {str(c) for c in range(90, 96)}
    | {"98"}
)


def country_code_length(digits: str) -> int:
    """Length of the country calling code at the start of *digits*."""
    if digits[:1] in _ONE_DIGIT_CODES:
        return 1
    if digits[:2] in _TWO_DIGIT_CODES:
        return 2
    return 3


def normalize(raw: Any, default_country_prefix: str = "+91") -> str:
    """
    Canonicalise *raw* as ``default_country_prefix + subscriber digits``.

    >>> normalize("9876543210", "+91")
    '+919876543210'
    >>> normalize("+44123", "+91")
    '+91123'
    >>> normalize("+91 98765-43210", "+91")
    '+919876543210'

    Raises InvalidPhoneError for empty or non-string input, anything other
    than digits after formatting is removed, or no subscriber digits.
    """
    if not isinstance(raw, str):
        raise InvalidPhoneError(raw, "phone must be a string")
    if not _PREFIX.match(default_country_prefix or ""):
        raise ValueError(f"Invalid default country prefix: {default_country_prefix!r}")

    cleaned = _FORMATTING_CHARS.sub("", raw)
    if not cleaned:
        raise InvalidPhoneError(raw, "phone is empty")

    international = cleaned.startswith("+")
    digits = cleaned[1:] if international else cleaned
    if not _DIGITS.match(digits):
        raise InvalidPhoneError(raw, "phone may only contain digits")

    if international:
        subscriber = digits[country_code_length(digits):]
    else:
        subscriber = digits.lstrip("0")

    if not subscriber:
        raise InvalidPhoneError(raw, "no subscriber number")
    return f"{default_country_prefix}{subscriber}"


def is_valid(raw: Any, default_country_prefix: str = "+91") -> bool:
    try:
        normalize(raw, default_country_prefix)
    except InvalidPhoneError:
        return False
    return True
