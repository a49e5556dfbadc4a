from __future__ import annotations

import json
import logging
import threading
import uuid
from typing import Any, Optional

log = logging.getLogger("companyops.request")

_local = threading.local()

REDACTED = "***redacted***"
SENSITIVE_KEYS = {
    "password", "passwd", "token", "tokens", "fcm_token", "fcm_tokens",
    "authorization", "csrfmiddlewaretoken", "contact_number",
}
BODY_EXCERPT_LIMIT = 2048

# =========================
# Thread-local request context
# =========================

def get_current_user() -> Optional[Any]:
    """Authenticated user of the request being served on this thread, or None."""
    return getattr(_local, "user", None)


def get_current_ip() -> Optional[str]:
    return getattr(_local, "ip", None)


def get_request_id() -> Optional[str]:
    return getattr(_local, "request_id", None)


def _client_ip(request) -> Optional[str]:
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


def _redact(value: Any, depth: int = 0) -> Any:
    """Copy of a request payload with secrets masked, nested lists and dicts included."""
    if depth > 5:
        return "..."
    if isinstance(value, dict) or hasattr(value, "lists"):
        items = value.lists() if hasattr(value, "lists") else value.items()
        out = {}
        for key, item in items:
            if str(key).lower() in SENSITIVE_KEYS:
                out[key] = REDACTED
            else:
                out[key] = _redact(item, depth + 1)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact(v, depth + 1) for v in value]
    if isinstance(value, (str, int, float, bool, type(None))):
        return value
    return str(value)

# =========================
# Middleware
# =========================

class CurrentUserMiddleware:
    """Expose the acting user and client address to signals and services for one request."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = getattr(request, "user", None)
        _local.user = user if user is not None and user.is_authenticated else None
        _local.ip = _client_ip(request)
        try:
            return self.get_response(request)
        finally:
            _local.user = None
            _local.ip = None


class ErrorLoggingMiddleware:
    """Tag each request with an id and log crashes and 5xx responses with a redacted context."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = request.META.get("HTTP_X_REQUEST_ID") or uuid.uuid4().hex
        _local.request_id = request_id
        try:
            response = self.get_response(request)
        except Exception:
            log.error("Unhandled exception | ctx=%s", self._context(request), exc_info=True)
            raise
        finally:
            _local.request_id = None

        if response.status_code >= 500:
            log.error("%s response | ctx=%s", response.status_code, self._context(request))
        response["X-Request-ID"] = request_id
        return response

    def _body_excerpt(self, request) -> Optional[str]:
        if "application/json" not in request.META.get("CONTENT_TYPE", ""):
            return None
        try:
            payload = json.loads(request.body or b"{}")
        except (ValueError, UnicodeDecodeError):
            return "<unparseable>"
        return json.dumps(_redact(payload))[:BODY_EXCERPT_LIMIT]

    def _context(self, request) -> str:
        user = getattr(request, "user", None)
        match = getattr(request, "resolver_match", None)
        ctx = {
            "id": request.META.get("HTTP_X_REQUEST_ID") or get_request_id(),
            "method": request.method,
            "path": request.get_full_path(),
            "view": match.view_name if match else None,
            "ip": _client_ip(request),
            "user": user.get_username() if user is not None and user.is_authenticated else "anonymous",
            "query": _redact(request.GET),
            "body": self._body_excerpt(request),
        }
        return json.dumps(ctx, ensure_ascii=False, default=str)
