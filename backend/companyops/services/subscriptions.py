from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from django.db import models, transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

log = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """One committed change to a watched model."""
    kind: str
    model: Type[models.Model]
    pk: Any
    instance: models.Model


ChangeCallback = Callable[[ChangeEvent], None]
ErrorCallback = Callable[[Exception], None]
Predicate = Callable[[models.Model], bool]

_registry: Dict[Type[models.Model], List["Subscription"]] = {}
_lock = threading.Lock()

# =========================
# Handle
# =========================

class Subscription:
    """Live listener on a model. Release it with ``unsubscribe()`` or a ``with`` block."""

    def __init__(self, model: Type[models.Model], on_change: ChangeCallback,
                 on_error: Optional[ErrorCallback] = None, where: Optional[Predicate] = None):
        self.model = model
        self.on_change = on_change
        self.on_error = on_error
        self.where = where
        self.active = True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()

    def unsubscribe(self) -> None:
        """Stop delivery. Safe to call more than once."""
        with _lock:
            subs = _registry.get(self.model, [])
            if self in subs:
                subs.remove(self)
            self.active = False

    def wants(self, instance: models.Model) -> bool:
        if self.where is None:
            return True
        try:
            return bool(self.where(instance))
        except Exception as exc:
            self._fail(exc)
            return False

    def deliver(self, event: ChangeEvent) -> None:
        # the handle may have been released between the write and the commit
        if not self.active:
            return
        try:
            self.on_change(event)
        except Exception as exc:
            self._fail(exc)

    def _fail(self, exc: Exception) -> None:
        if self.on_error is None:
            log.exception("Subscription callback on %s failed", self.model.__name__, exc_info=exc)
            return
        try:
            self.on_error(exc)
        except Exception:
            log.exception("Subscription error callback on %s failed", self.model.__name__)


def subscribe(model: Type[models.Model], on_change: ChangeCallback,
              on_error: Optional[ErrorCallback] = None, where: Optional[Predicate] = None) -> Subscription:
    """Listen for committed creates, updates and deletes of ``model``.

    Args:
        model: Model class to watch.
        on_change: Called with a ChangeEvent after the writing transaction commits.
        on_error: Receives exceptions raised by ``on_change`` or ``where``. Logged when omitted.
        where: Optional filter on the changed instance.

    Returns:
        Subscription: Handle; call ``unsubscribe()`` or use it as a context manager.
    """
    sub = Subscription(model, on_change, on_error, where)
    with _lock:
        _registry.setdefault(model, []).append(sub)
    return sub


def active_count(model: Optional[Type[models.Model]] = None) -> int:
    with _lock:
        if model is not None:
            return len(_registry.get(model, []))
        return sum(len(v) for v in _registry.values())

# =========================
# Signal wiring
# =========================

def _publish(sender, instance, kind: str) -> None:
    with _lock:
        subs = list(_registry.get(sender, ()))
    if not subs:
        return
    event = ChangeEvent(kind=kind, model=sender, pk=instance.pk, instance=instance)
    for sub in subs:
        if sub.wants(instance):
            transaction.on_commit(lambda s=sub: s.deliver(event))


@receiver(post_save, dispatch_uid="companyops_subscriptions_save")
def _on_save(sender, instance, created: bool, raw: bool = False, **kwargs) -> None:
    if raw:
        return
    _publish(sender, instance, CREATED if created else UPDATED)


@receiver(post_delete, dispatch_uid="companyops_subscriptions_delete")
def _on_delete(sender, instance, **kwargs) -> None:
    _publish(sender, instance, DELETED)
