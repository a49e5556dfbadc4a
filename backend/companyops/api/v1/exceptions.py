from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from companyops.domain.errors import (
    CapacityExceeded,
    DomainError,
    Duplicate,
    Forbidden,
    InvalidState,
    NotFound,
    UpstreamFailure,
    ValidationError,
)

log = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidState, status.HTTP_409_CONFLICT),
    (Duplicate, status.HTTP_409_CONFLICT),
    (CapacityExceeded, status.HTTP_409_CONFLICT),
    (UpstreamFailure, status.HTTP_502_BAD_GATEWAY),
)


def status_for(exc: DomainError) -> int:
    for cls, code in STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return status.HTTP_400_BAD_REQUEST


def domain_exception_handler(exc, context):
    """DRF handler: domain errors become ``{"detail", "code"[, "errors" | "existingId"]}`` responses."""
    if not isinstance(exc, DomainError):
        return exception_handler(exc, context)

    code = status_for(exc)
    body = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, ValidationError):
        body["errors"] = exc.errors
    if isinstance(exc, Duplicate) and exc.existing is not None:
        body["existingId"] = exc.existing.pk
    if isinstance(exc, UpstreamFailure):
        log.warning("Upstream failure in %s: %s", context.get("view").__class__.__name__, exc.message)
    return Response(body, status=code)
