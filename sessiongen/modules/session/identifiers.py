"""Client identifier normalization."""

import re
from typing import Optional

from ...errors import IdentifierValidationError

MIN_IDENTIFIER_LENGTH = 10

_NON_DIGITS = re.compile(r"\D")


def normalize_identifier(raw: Optional[str]) -> str:
    """
    Strip every non-digit character and validate the result.

    Args:
        raw: Identifier as supplied by the caller (e.g. "+1 (555) 123-4567")

    Returns:
        Digits-only identifier

    Raises:
        IdentifierValidationError: If missing or shorter than MIN_IDENTIFIER_LENGTH digits
    """
    if raw is None or not str(raw).strip():
        raise IdentifierValidationError("Phone number is required")

    digits = _NON_DIGITS.sub("", str(raw))
    if len(digits) < MIN_IDENTIFIER_LENGTH:
        raise IdentifierValidationError("Invalid phone number format", digits or None)
    return digits
