"""
errors.py

The single domain error raised by the service layer.

Every failure carries a `kind` discriminator and, where it applies, a
`reason` code plus the context needed to report it (entity and key for
lookups, field and rule for validation).  Storage faults wrapped by the
services are chained, so `__cause__` holds the original StorageError.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CREATION = "creation"
    UPDATE = "update"
    DELETION = "deletion"
    RETRIEVAL = "retrieval"
    VALIDATION = "validation"


class ErrorReason(str, Enum):
    DUPLICATE_NAME = "duplicate_name"
    INVALID_FIELD = "invalid_field"
    NOT_FOUND = "not_found"
    PERSISTENCE_FAILURE = "persistence_failure"


class DomainError(Exception):
    """Raised when an operation cannot complete; terminal for that operation."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        reason: Optional[ErrorReason] = None,
        entity: Optional[str] = None,
        key: Any = None,
        field: Optional[str] = None,
        rule: Optional[str] = None,
    ):
        self.kind = kind
        self.reason = reason
        self.entity = entity
        self.key = key
        self.field = field
        self.rule = rule
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"DomainError(kind={self.kind.value!r}, "
            f"reason={self.reason.value if self.reason else None!r}, "
            f"message={str(self)!r})"
        )

    # -- constructors -------------------------------------------------------

    @classmethod
    def not_found(cls, entity: str, key: Any) -> "DomainError":
        return cls(
            ErrorKind.NOT_FOUND,
            f'{entity} "{key!s}" not found',
            reason=ErrorReason.NOT_FOUND,
            entity=entity,
            key=key,
        )

    @classmethod
    def validation(cls, field: str, rule: str, message: str) -> "DomainError":
        return cls(ErrorKind.VALIDATION, message, field=field, rule=rule)

    @classmethod
    def creation(cls, reason: ErrorReason, message: str, **context) -> "DomainError":
        return cls(ErrorKind.CREATION, message, reason=reason, **context)

    @classmethod
    def update(cls, reason: ErrorReason, message: str, **context) -> "DomainError":
        return cls(ErrorKind.UPDATE, message, reason=reason, **context)

    @classmethod
    def deletion(cls, reason: ErrorReason, message: str, **context) -> "DomainError":
        return cls(ErrorKind.DELETION, message, reason=reason, **context)

    @classmethod
    def storage_failure(
        cls, kind: ErrorKind, message: str, **context
    ) -> "DomainError":
        """A port fault surfaced under the kind of the operation it interrupted."""
        return cls(kind, message, reason=ErrorReason.PERSISTENCE_FAILURE, **context)

    @classmethod
    def invalid_field(
        cls, kind: ErrorKind, error: "DomainError", entity: str
    ) -> "DomainError":
        """Re-tag a validation failure as a creation or update failure."""
        return cls(
            kind,
            f"Invalid {entity} {error.field}: {error}",
            reason=ErrorReason.INVALID_FIELD,
            entity=entity,
            field=error.field,
            rule=error.rule,
        )

    # -- predicates ---------------------------------------------------------

    @property
    def is_not_found(self) -> bool:
        return self.kind == ErrorKind.NOT_FOUND

    @property
    def is_persistence_failure(self) -> bool:
        return self.reason == ErrorReason.PERSISTENCE_FAILURE
