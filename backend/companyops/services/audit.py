from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional

from django.contrib.auth.models import User
from django.core.serializers.json import DjangoJSONEncoder
from django.forms.models import model_to_dict

from companyops.domain.models import AuditLog
from core.middleware import get_current_ip, get_current_user

DEFAULT_EXCLUDE = {"id"}


def snapshot_instance(
    instance, *,
    include: Optional[Iterable[str]] = None,
    exclude: Iterable[str] = DEFAULT_EXCLUDE
) -> Dict[str, Any]:
    """JSON-safe copy of a model's field values.

    Dates, times and decimals are turned into strings so the snapshot can be
    stored in a JSONField as-is.

    Args:
        instance (Django Model): The instance to capture.
        include (Optional[Iterable[str]], optional): Only these fields. Defaults to None.
        exclude (Iterable[str], optional): Fields left out. Defaults to DEFAULT_EXCLUDE.

    Returns:
        Dict[str, Any]: Field name to value.
    """
    if include:
        data = model_to_dict(instance, fields=list(include))
    else:
        data = model_to_dict(instance, exclude=list(exclude))
    return json.loads(json.dumps(data, cls=DjangoJSONEncoder))


def audit(
    action: str,
    instance, *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    author: Optional[User] = None,
    table: Optional[str] = None,
    record_id: Optional[str] = None,
) -> AuditLog:
    """Write one AuditLog row for a change to ``instance``.

    Args:
        action (str): e.g. "create", "update", "delete", "swap_approved".
        instance (Django Model): The changed instance.
        before (Optional[Dict[str, Any]], optional): State before the change.
        after (Optional[Dict[str, Any]], optional): State after the change.
        author (Optional[User], optional): Acting account; read from the request when omitted.
        table (Optional[str], optional): Defaults to the model's table name.
        record_id (Optional[str], optional): Defaults to the instance pk.
    """
    if not table:
        table = instance._meta.db_table
    if not record_id:
        record_id = str(getattr(instance, "pk", None) or "unknown")
    user = author or get_current_user()

    return AuditLog.objects.create(
        action=action,
        table=table,
        record_id=record_id,
        before=before,
        after=after,
        author=user if user and user.is_authenticated else None,
        ip_address=get_current_ip(),
    )


def changed_fields(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """``{field: [old, new]}`` for the fields that differ."""
    before, after = before or {}, after or {}
    return {
        key: [before.get(key), after.get(key)]
        for key in sorted(set(before) | set(after))
        if before.get(key) != after.get(key)
    }
