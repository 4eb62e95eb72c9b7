"""Folio Error Hierarchy.

Provides a structured error hierarchy for store and editor operations:
- FolioError: Base exception for all application errors
- ValidationError: Input validation failures (bad block type, foreign ids)
- NotFoundError: Page, block or trash record unresolved for the owner
- PersistenceUnavailableError: The persistence collaborator cannot be reached
- StorageError: Unexpected failure inside the persistence collaborator

Each error type includes:
- Descriptive message
- Recoverable flag (whether trying again later can succeed)
- Structured representation for RPC responses (see ``get_error_code``)

Usage:
    from folio.errors import NotFoundError

    page = get_page(page_id, owner_id=owner)
    if page is None:
        raise NotFoundError("Page not found", resource_type="page", resource_id=page_id)
"""

from __future__ import annotations

import logging
from typing import Any

from .rpc.types import (
    INTERNAL_ERROR,
    NOT_FOUND_ERROR,
    PERSISTENCE_UNAVAILABLE_ERROR,
    STORAGE_ERROR,
    VALIDATION_ERROR,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Error Base Classes
# =============================================================================


class FolioError(Exception):
    """Base exception for all Folio application errors.

    Attributes:
        message: Human-readable error description
        recoverable: Whether the operation can be retried
        context: Additional context for debugging
    """

    def __init__(
        self,
        message: str,
        *,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to structured dictionary for RPC responses."""
        return {
            "type": type(self).__name__.lower().replace("error", ""),
            "message": self.message,
            "recoverable": self.recoverable,
            **{k: v for k, v in self.context.items() if v is not None},
        }


class ValidationError(FolioError):
    """Input validation failed.

    Example:
        raise ValidationError("Unknown block type", field="type", value="table")
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field
        if value is not None:
            context["value"] = _truncate(str(value), 100)
        super().__init__(message, recoverable=False, context=context)
        self.field = field


class NotFoundError(FolioError):
    """Resource not found (or not owned by the caller)."""

    def __init__(
        self,
        message: str,
        *,
        resource_type: str | None = None,
        resource_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            recoverable=False,
            context={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class PersistenceUnavailableError(FolioError):
    """The persistence collaborator could not be reached."""

    def __init__(
        self,
        message: str = "Persistence unavailable",
        *,
        operation: str | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(
            message,
            recoverable=True,  # Transport failures are usually transient
            context={"operation": operation, "url": url},
        )
        self.operation = operation


class StorageError(FolioError):
    """Unexpected failure inside the persistence layer."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
    ) -> None:
        super().__init__(message, recoverable=False, context={"operation": operation})
        self.operation = operation


# =============================================================================
# Helpers
# =============================================================================


def _truncate(value: str | None, max_len: int) -> str | None:
    """Truncate a string value for safe logging."""
    if value is None:
        return None
    if len(value) <= max_len:
        return value
    return value[:max_len] + "..."


# =============================================================================
# RPC Error Code Mapping
# =============================================================================


# Map domain errors to JSON-RPC error codes
ERROR_CODES: dict[type[FolioError], int] = {
    ValidationError: VALIDATION_ERROR,
    NotFoundError: NOT_FOUND_ERROR,
    PersistenceUnavailableError: PERSISTENCE_UNAVAILABLE_ERROR,
    StorageError: STORAGE_ERROR,
}


def get_error_code(exc: FolioError) -> int:
    """Get the JSON-RPC error code for a domain error."""
    if type(exc) in ERROR_CODES:
        return ERROR_CODES[type(exc)]
    for error_type, code in ERROR_CODES.items():
        if isinstance(exc, error_type):
            return code
    return INTERNAL_ERROR
