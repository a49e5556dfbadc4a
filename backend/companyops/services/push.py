from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import firebase_admin
from django.conf import settings
from django.utils.module_loading import import_string
from firebase_admin import credentials, messaging

log = logging.getLogger(__name__)

INVALID_TOKEN = "messaging/invalid-registration-token"
UNREGISTERED_TOKEN = "messaging/registration-token-not-registered"
INVALID_TOKEN_CODES = frozenset({INVALID_TOKEN, UNREGISTERED_TOKEN})


@dataclass
class PushMessage:
    """One multicast notification. Platform blocks are plain dicts; the backend maps them."""
    title: str
    body: str
    tokens: List[str]
    data: Dict[str, str] = field(default_factory=dict)
    webpush: Dict[str, Any] = field(default_factory=dict)
    apns: Dict[str, Any] = field(default_factory=dict)
    android: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SendResult:
    success: bool
    error_code: Optional[str] = None
    message_id: Optional[str] = None

    @property
    def token_invalid(self) -> bool:
        return not self.success and self.error_code in INVALID_TOKEN_CODES


@dataclass
class BatchResponse:
    """Per-token outcomes, in the same order as ``PushMessage.tokens``."""
    responses: List[SendResult]

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.responses if r.success)

    @property
    def failure_count(self) -> int:
        return len(self.responses) - self.success_count

# =========================
# Backends
# =========================

class BasePushBackend:
    def send_multicast(self, message: PushMessage) -> BatchResponse:
        raise NotImplementedError


class ConsolePushBackend(BasePushBackend):
    """Logs messages instead of sending them. Development default."""

    def send_multicast(self, message: PushMessage) -> BatchResponse:
        log.info("push -> %d token(s): %s | %s", len(message.tokens), message.title, message.body.replace("\n", " / "))
        return BatchResponse([SendResult(True, message_id=f"console-{i}") for i, _ in enumerate(message.tokens)])


# Test inspection points, in the manner of django.core.mail.outbox.
outbox: List[PushMessage] = []
invalid_tokens: Set[str] = set()
failing_tokens: Set[str] = set()
_outbox_lock = threading.Lock()


class LocMemPushBackend(BasePushBackend):
    """Keeps messages in ``outbox``.

    Tokens listed in ``invalid_tokens`` fail as unregistered and tokens in
    ``failing_tokens`` fail with a transient error.
    """

    def send_multicast(self, message: PushMessage) -> BatchResponse:
        with _outbox_lock:
            outbox.append(message)
        results = []
        for i, token in enumerate(message.tokens):
            if token in invalid_tokens:
                results.append(SendResult(False, error_code=UNREGISTERED_TOKEN))
            elif token in failing_tokens:
                results.append(SendResult(False, error_code="messaging/internal-error"))
            else:
                results.append(SendResult(True, message_id=f"locmem-{len(outbox)}-{i}"))
        return BatchResponse(results)


class FCMPushBackend(BasePushBackend):
    """Firebase Cloud Messaging through firebase-admin."""
    _app = None
    _app_lock = threading.Lock()

    @classmethod
    def _get_app(cls):
        with cls._app_lock:
            if cls._app is None:
                path = getattr(settings, "FCM_CREDENTIALS_FILE", None)
                cred = credentials.Certificate(path) if path else credentials.ApplicationDefault()
                cls._app = firebase_admin.initialize_app(cred, name="companyops-push")
        return cls._app

    @staticmethod
    def _error_code(exc) -> str:
        if isinstance(exc, messaging.UnregisteredError):
            return UNREGISTERED_TOKEN
        if isinstance(exc, messaging.SenderIdMismatchError):
            return INVALID_TOKEN
        text = str(exc).lower()
        if getattr(exc, "code", "") == "INVALID_ARGUMENT" and "registration token" in text:
            return INVALID_TOKEN
        return f"messaging/{str(getattr(exc, 'code', 'unknown')).lower().replace('_', '-')}"

    def _build(self, message: PushMessage):
        web = message.webpush.get("notification", {})
        aps = message.apns.get("aps", {})
        android = message.android.get("notification", {})
        return messaging.MulticastMessage(
            tokens=message.tokens,
            notification=messaging.Notification(title=message.title, body=message.body),
            data=message.data,
            webpush=messaging.WebpushConfig(
                notification=messaging.WebpushNotification(
                    icon=web.get("icon"),
                    badge=web.get("badge"),
                    tag=web.get("tag"),
                    require_interaction=web.get("require_interaction"),
                    actions=[
                        messaging.WebpushNotificationAction(a["action"], a["title"])
                        for a in web.get("actions", [])
                    ],
                ),
                fcm_options=messaging.WebpushFCMOptions(link=message.webpush.get("link")),
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(
                        alert=messaging.ApsAlert(title=message.title, body=message.body),
                        badge=aps.get("badge"),
                        sound=aps.get("sound"),
                    )
                )
            ),
            android=messaging.AndroidConfig(
                priority=message.android.get("priority", "high"),
                notification=messaging.AndroidNotification(
                    icon=android.get("icon"),
                    color=android.get("color"),
                    channel_id=android.get("channel_id"),
                    tag=android.get("tag"),
                ),
            ),
        )

    def send_multicast(self, message: PushMessage) -> BatchResponse:
        response = messaging.send_each_for_multicast(self._build(message), app=self._get_app())
        return BatchResponse([
            SendResult(True, message_id=r.message_id) if r.success
            else SendResult(False, error_code=self._error_code(r.exception))
            for r in response.responses
        ])


def get_backend(path: Optional[str] = None) -> BasePushBackend:
    """Instantiate the configured backend (``settings.PUSH_BACKEND``)."""
    dotted = path or getattr(settings, "PUSH_BACKEND", "companyops.services.push.ConsolePushBackend")
    return import_string(dotted)()
