"""
==============================================================================
Validation Utilities Module
==============================================================================

Validation for manually entered scan payloads (handheld scanner or typed).

Validation Rules:
----------------
- Surrounding whitespace is stripped
- Must not be empty after stripping
- At most ``max_length`` characters
- No control characters other than tab

==============================================================================
"""

from __future__ import annotations

import re
from typing import Optional, Tuple


class ScanPayloadValidator:
    """
    Validator for manually entered codes.

    Handheld scanners in keyboard mode append a newline or carriage return,
    which stripping removes.

    Example:
        >>> validator = ScanPayloadValidator()
        >>> is_valid, normalized, error = validator.validate("  REG-0042\\n")
        >>> print(normalized)
        'REG-0042'
    """

    CONTROL_PATTERN = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")

    DEFAULT_MAX_LENGTH = 2048

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH) -> None:
        self.max_length = max_length

    def validate(self, payload: Optional[str]) -> Tuple[bool, Optional[str], Optional[str]]:
        """
        Validate and normalize a payload.

        Args:
            payload: Raw manual input

        Returns:
            Tuple of (is_valid, normalized_payload, error_message)
        """
        if payload is None:
            return False, None, "Code is required"

        if not isinstance(payload, str):
            return False, None, "Code must be text"

        normalized = payload.strip()

        if not normalized:
            return False, None, "Code cannot be empty"

        if len(normalized) > self.max_length:
            return False, None, f"Code must be at most {self.max_length} characters"

        if self.CONTROL_PATTERN.search(normalized):
            return False, None, "Code contains control characters"

        return True, normalized, None

    def is_valid(self, payload: Optional[str]) -> bool:
        """Quick validation check."""
        is_valid, _, _ = self.validate(payload)
        return is_valid
