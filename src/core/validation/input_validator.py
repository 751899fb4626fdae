"""
Input Validation Layer for Guildhall

Purpose
-------
Provide a centralized validation layer for every value that enters a service
operation: ids, free text, tags, e-mail addresses, structured stash content
and expiry timestamps. Enforces type safety, bounds checking and format
validation before any state is loaded or mutated.

Responsibilities
----------------
- Validate and convert inputs to correct types (int, str, list, dict, datetime)
- Enforce bounds checking for numerical inputs (min/max validation)
- Validate user ids and database ids
- Validate string length and character restrictions
- Validate choice inputs against allowed options
- Validate id lists with duplicate detection or de-duplication
- Raise ValidationError with user-friendly error messages

Non-Responsibilities
--------------------
- Business rule enforcement (service layer concern)
- Authorization (AuthorizationPolicy)
- Transactions, locking, or side effects

Observability
-------------
Every validation failure is logged at debug level with field_name, raw_value
(repr) and reason.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, NoReturn, Optional

from src.core.logging.logger import get_logger
from src.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

MAX_ID_VALUE = 2**63 - 1

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    """Log and raise a ValidationError."""
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value)[:200],
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Centralized input validation for all service inputs.

    All validation methods:
    - Are stateless and deterministic
    - Return validated values on success
    - Raise ValidationError on failure (never silently fail)
    """

    # =========================================================================
    # INTEGER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        allow_zero: bool = True,
    ) -> int:
        """
        Validate and convert value to integer with optional bounds checking.

        Args:
            value: Input value to validate (string, int, etc.)
            field_name: Name of field for error messages/logging
            min_value: Minimum allowed value (inclusive)
            max_value: Maximum allowed value (inclusive)
            allow_zero: Whether zero is acceptable

        Returns:
            Validated integer value

        Raises:
            ValidationError: If validation fails
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if isinstance(value, bool):
            _raise_validation_error(field_name, value, "Must be a whole number, got a boolean")

        try:
            int_value = int(value)
        except (ValueError, TypeError):
            _raise_validation_error(field_name, value, f"Must be a whole number, got '{value}'")

        if not allow_zero and int_value == 0:
            _raise_validation_error(field_name, int_value, "Cannot be zero")

        if min_value is not None and int_value < min_value:
            _raise_validation_error(field_name, int_value, f"Must be at least {min_value}, got {int_value}")

        if max_value is not None and int_value > max_value:
            _raise_validation_error(field_name, int_value, f"Cannot exceed {max_value}, got {int_value}")

        return int_value

    @staticmethod
    def validate_positive_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Validate that value is a strictly positive integer (>= 1)."""
        return InputValidator.validate_integer(
            value=value,
            field_name=field_name,
            min_value=1,
            max_value=max_value,
            allow_zero=False,
        )

    # =========================================================================
    # ID VALIDATION
    # =========================================================================

    @staticmethod
    def validate_user_id(value: Any, field_name: str = "user_id") -> int:
        """User ids are resolved by the identity provider as positive 64-bit integers."""
        return InputValidator.validate_positive_integer(value, field_name=field_name, max_value=MAX_ID_VALUE)

    @staticmethod
    def validate_entity_id(value: Any, field_name: str) -> int:
        return InputValidator.validate_positive_integer(value, field_name=field_name, max_value=MAX_ID_VALUE)

    # =========================================================================
    # STRING VALIDATION
    # =========================================================================

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
        allowed_chars: Optional[str] = None,
    ) -> str:
        """
        Validate string input with optional length and character constraints.

        Args:
            value: String value to validate
            field_name: Name of field for error messages
            min_length: Minimum string length after stripping
            max_length: Maximum string length after stripping
            allowed_chars: Regex character class for allowed characters
                           (e.g., 'a-zA-Z0-9 ')

        Returns:
            Validated, stripped string

        Raises:
            ValidationError: If validation fails
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if not isinstance(value, str):
            _raise_validation_error(field_name, value, "Must be text")

        str_value = value.strip()

        if min_length is not None and len(str_value) < min_length:
            _raise_validation_error(field_name, str_value, f"Must be at least {min_length} characters")

        if max_length is not None and len(str_value) > max_length:
            _raise_validation_error(field_name, str_value, f"Cannot exceed {max_length} characters")

        if allowed_chars is not None and not re.fullmatch(f"[{allowed_chars}]+", str_value):
            _raise_validation_error(field_name, str_value, "Contains invalid characters")

        return str_value

    @staticmethod
    def validate_optional_string(
        value: Any,
        field_name: str,
        max_length: Optional[int] = None,
    ) -> Optional[str]:
        """Like validate_string, but ``None`` and blank text normalize to ``None``."""
        if value is None:
            return None
        str_value = InputValidator.validate_string(value, field_name, max_length=max_length)
        return str_value or None

    @staticmethod
    def validate_email(value: Any, field_name: str = "email") -> str:
        email = InputValidator.validate_string(value, field_name, min_length=3, max_length=320)
        if not _EMAIL_PATTERN.match(email):
            _raise_validation_error(field_name, email, "Must be a valid e-mail address")
        return email.lower()

    # =========================================================================
    # COLLECTION VALIDATION
    # =========================================================================

    @staticmethod
    def validate_id_list(
        values: Any,
        field_name: str,
        min_count: Optional[int] = None,
        max_count: Optional[int] = None,
        deduplicate: bool = False,
    ) -> List[int]:
        """
        Validate a list of ids with optional count limits.

        Args:
            values: Sequence of id-like values to validate
            field_name: Name of field for error messages
            min_count: Minimum number of ids required
            max_count: Maximum number of ids allowed
            deduplicate: Drop repeated ids (keeping first-seen order) instead
                of rejecting them

        Returns:
            List of validated integer ids
        """
        if not isinstance(values, (list, tuple)):
            _raise_validation_error(field_name, values, "Must be a list")

        validated_ids: List[int] = []
        for idx, raw_value in enumerate(values):
            try:
                validated_ids.append(InputValidator.validate_entity_id(raw_value, field_name=f"{field_name}[{idx}]"))
            except ValidationError as exc:
                _raise_validation_error(field_name, raw_value, f"Item {idx}: {exc.validation_message}")

        if deduplicate:
            validated_ids = list(dict.fromkeys(validated_ids))
        elif len(validated_ids) != len(set(validated_ids)):
            _raise_validation_error(field_name, validated_ids, "List contains duplicate IDs")

        if min_count is not None and len(validated_ids) < min_count:
            _raise_validation_error(field_name, values, f"Must provide at least {min_count} items")

        if max_count is not None and len(validated_ids) > max_count:
            _raise_validation_error(field_name, values, f"Cannot provide more than {max_count} items")

        return validated_ids

    @staticmethod
    def validate_tags(
        values: Any,
        field_name: str = "tags",
        max_count: int = 10,
        max_length: int = 50,
    ) -> List[str]:
        """Validate a tag list: strings, stripped, lowercased, de-duplicated."""
        if values is None:
            return []

        if not isinstance(values, (list, tuple)):
            _raise_validation_error(field_name, values, "Must be a list")

        tags: List[str] = []
        for idx, raw in enumerate(values):
            tag = InputValidator.validate_string(raw, f"{field_name}[{idx}]", min_length=1, max_length=max_length)
            tags.append(tag.lower())

        tags = list(dict.fromkeys(tags))
        if len(tags) > max_count:
            _raise_validation_error(field_name, values, f"Cannot provide more than {max_count} tags")

        return tags

    @staticmethod
    def validate_string_list(
        values: Any,
        field_name: str,
        max_count: int,
        max_length: int = 2048,
    ) -> List[str]:
        """Validate a list of non-empty strings such as attachment URLs."""
        if values is None:
            return []

        if not isinstance(values, (list, tuple)):
            _raise_validation_error(field_name, values, "Must be a list")

        if len(values) > max_count:
            _raise_validation_error(field_name, values, f"Cannot provide more than {max_count} items")

        return [
            InputValidator.validate_string(raw, f"{field_name}[{idx}]", min_length=1, max_length=max_length)
            for idx, raw in enumerate(values)
        ]

    @staticmethod
    def validate_mapping(
        value: Any,
        field_name: str,
        max_keys: int = 100,
    ) -> Dict[str, Any]:
        """Validate a structured key -> value mapping with string keys."""
        if not isinstance(value, dict):
            _raise_validation_error(field_name, value, "Must be a key/value mapping")

        if len(value) > max_keys:
            _raise_validation_error(field_name, value, f"Cannot contain more than {max_keys} keys")

        for key in value:
            if not isinstance(key, str) or not key.strip():
                _raise_validation_error(field_name, key, "Keys must be non-empty text")

        return dict(value)

    # =========================================================================
    # TIME VALIDATION
    # =========================================================================

    @staticmethod
    def validate_future_datetime(value: Any, field_name: str, now: datetime) -> datetime:
        """Validate a timezone-aware datetime strictly after ``now``."""
        if not isinstance(value, datetime):
            _raise_validation_error(field_name, value, "Must be a datetime")

        if value.tzinfo is None:
            _raise_validation_error(field_name, value, "Must include a timezone")

        if value <= now:
            _raise_validation_error(field_name, value.isoformat(), "Must be in the future")

        return value
