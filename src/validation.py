"""
validation.py

Field-level checks shared by the create and update paths.  Each check
returns None on success and raises DomainError(kind=VALIDATION) naming the
offending field and the rule it broke.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

from errors import DomainError

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 1000
USERNAME_MAX_LENGTH = 50

_USERNAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def validate_name(name: Any, field: str = "name") -> None:
    if name is None:
        raise DomainError.validation(field, "required", f"{field} is required.")
    if not isinstance(name, str):
        raise DomainError.validation(field, "required", f"{field} must be text.")
    if not name.strip():
        raise DomainError.validation(field, "blank", f"{field} must not be blank.")
    if len(name) > NAME_MAX_LENGTH:
        raise DomainError.validation(
            field,
            "too_long",
            f"{field} must be at most {NAME_MAX_LENGTH} characters.",
        )
    # Cc covers tabs, newlines and the other C0/C1 controls
    if any(unicodedata.category(ch) == "Cc" for ch in name):
        raise DomainError.validation(
            field,
            "invalid_characters",
            f"{field} must not contain control characters.",
        )


def validate_description(description: Any, field: str = "description") -> None:
    if description is None or not isinstance(description, str):
        raise DomainError.validation(field, "required", f"{field} must be text.")
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise DomainError.validation(
            field,
            "too_long",
            f"{field} must be at most {DESCRIPTION_MAX_LENGTH} characters.",
        )


def validate_username(username: Any, field: str = "username") -> None:
    if username is None or not isinstance(username, str):
        raise DomainError.validation(field, "required", f"{field} is required.")
    if not username.strip():
        raise DomainError.validation(field, "blank", f"{field} must not be blank.")
    if len(username) > USERNAME_MAX_LENGTH:
        raise DomainError.validation(
            field,
            "too_long",
            f"{field} must be at most {USERNAME_MAX_LENGTH} characters.",
        )
    if not _USERNAME_RE.match(username):
        raise DomainError.validation(
            field,
            "invalid_characters",
            f"{field} may only contain letters, digits, '.', '_' and '-'.",
        )


def validate_hours(hours: Any, field: str) -> None:
    """Hours are whole, non-negative numbers."""
    if isinstance(hours, bool) or not isinstance(hours, int):
        raise DomainError.validation(
            field, "not_an_integer", f"{field} must be a whole number of hours."
        )
    if hours < 0:
        raise DomainError.validation(field, "negative", f"{field} must not be negative.")
