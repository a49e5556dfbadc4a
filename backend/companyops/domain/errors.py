from __future__ import annotations

from typing import Any, Dict, List, Optional


class DomainError(Exception):
    """Base class for every error raised by the domain services.

    The message is meant to be shown to the user as-is.
    """
    code = "domain_error"

    def __init__(self, message: str = "", **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


class NotFound(DomainError):
    code = "not_found"


class InvalidState(DomainError):
    code = "invalid_state"


class Forbidden(DomainError):
    code = "forbidden"


class Duplicate(DomainError):
    code = "duplicate"

    def __init__(self, message: str = "", existing: Optional[Any] = None, **context: Any) -> None:
        super().__init__(message, **context)
        self.existing = existing


class CapacityExceeded(DomainError):
    code = "capacity_exceeded"


class ValidationError(DomainError):
    """Malformed input, reported per field before anything is written."""
    code = "validation_error"

    def __init__(self, errors: Dict[str, List[str]], message: str = "Invalid input") -> None:
        super().__init__(message)
        self.errors = errors

    @classmethod
    def from_form(cls, form) -> "ValidationError":
        return cls({field: [str(m) for m in msgs] for field, msgs in form.errors.items()})


class UpstreamFailure(DomainError):
    code = "upstream_failure"
