from __future__ import annotations

import re
from typing import List, Optional

from .config import NUMBERS_ERROR_MESSAGE, PHONE_NUMBER_PATTERN
from .models import ValidationResult

_PHONE_RE = re.compile(PHONE_NUMBER_PATTERN, re.ASCII)


def split_numbers(raw: Optional[str]) -> List[str]:
    """Split a recipient list on single spaces.

    Trailing empty tokens are dropped; empty tokens elsewhere are kept so
    that a leading or doubled space fails validation.
    """
    if not raw:
        return []
    tokens = raw.split(" ")
    while tokens and not tokens[-1]:
        tokens.pop()
    return tokens


def is_phone_number(token: str) -> bool:
    return _PHONE_RE.fullmatch(token) is not None


def validate_numbers(raw: Optional[str]) -> bool:
    tokens = split_numbers(raw)
    if not tokens:
        return False
    return all(is_phone_number(token) for token in tokens)


def check_numbers_to_notify(value: Optional[str]) -> ValidationResult:
    """Live form feedback for the numbersToNotify field."""
    if validate_numbers(value):
        return ValidationResult.ok()
    return ValidationResult.error(NUMBERS_ERROR_MESSAGE)


__all__ = [
    "split_numbers",
    "is_phone_number",
    "validate_numbers",
    "check_numbers_to_notify",
]
