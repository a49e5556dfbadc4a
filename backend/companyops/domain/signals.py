from __future__ import annotations

import logging

from django.contrib.auth.models import Group
from django.db import transaction
from django.db.models.signals import post_delete, post_save, pre_save
from django.dispatch import receiver

from companyops.services import subscriptions  # noqa: F401  registers change receivers
from companyops.services.audit import audit, changed_fields, snapshot_instance

from .models import (
    LibertyRequest,
    Personnel,
    RecommendationStatus,
    RequestStatus,
    Role,
    ScheduleEntry,
    SwapRequest,
    WeatherRecommendation,
)

log = logging.getLogger(__name__)

AUDITED_MODELS = (ScheduleEntry, SwapRequest, LibertyRequest, Personnel)

# ========= Audit trail =========

def _capture_before(sender, instance, raw=False, **kwargs) -> None:
    if raw or not instance.pk:
        instance._before_snapshot = None
        return
    old = sender.objects.filter(pk=instance.pk).first()
    instance._before_snapshot = snapshot_instance(old) if old is not None else None


def _audit_save(sender, instance, created: bool, raw=False, **kwargs) -> None:
    if raw:
        return
    before, after = getattr(instance, "_before_snapshot", None), snapshot_instance(instance)
    if created:
        audit("create", instance, before=None, after=after)
    elif changed_fields(before, after):
        audit("update", instance, before=before, after=after)


def _audit_delete(sender, instance, **kwargs) -> None:
    audit("delete", instance, before=snapshot_instance(instance), after=None)


for _model in AUDITED_MODELS:
    _uid = _model._meta.model_name
    pre_save.connect(_capture_before, sender=_model, dispatch_uid=f"audit_before_{_uid}")
    post_save.connect(_audit_save, sender=_model, dispatch_uid=f"audit_save_{_uid}")
    post_delete.connect(_audit_delete, sender=_model, dispatch_uid=f"audit_delete_{_uid}")

# ========= Personnel: keep the account's group in step with the role =========

def sync_role_group(person: Personnel) -> None:
    """Put the linked account in exactly the group named after ``person.role``."""
    if not person.user_id:
        return
    role_groups = Group.objects.filter(name__in=Role.values)
    user = person.user
    user.groups.remove(*role_groups.exclude(name=person.role))
    group, _ = Group.objects.get_or_create(name=person.role)
    user.groups.add(group)


@receiver(post_save, sender=Personnel, dispatch_uid="personnel_role_sync")
def _personnel_role_sync(sender, instance: Personnel, created: bool, raw=False, **kwargs) -> None:
    if raw:
        return
    changed = changed_fields(getattr(instance, "_before_snapshot", None), snapshot_instance(instance))
    if created or "role" in changed or "user" in changed:
        sync_role_group(instance)

# ========= New documents waiting for approval =========

def _enqueue(task_name: str, pk: int) -> None:
    from companyops import tasks

    def _send():
        try:
            getattr(tasks, task_name).delay(pk)
        except Exception:
            log.exception("Failed to enqueue %s for %s", task_name, pk)

    transaction.on_commit(_send)


@receiver(post_save, sender=LibertyRequest, dispatch_uid="liberty_created_notify")
def _liberty_created(sender, instance: LibertyRequest, created: bool, raw=False, **kwargs) -> None:
    if created and not raw and instance.status == RequestStatus.PENDING:
        _enqueue("notify_pass_request_created", instance.pk)


@receiver(post_save, sender=SwapRequest, dispatch_uid="swap_created_notify")
def _swap_created(sender, instance: SwapRequest, created: bool, raw=False, **kwargs) -> None:
    if created and not raw and instance.status == RequestStatus.PENDING:
        _enqueue("notify_swap_request_created", instance.pk)


@receiver(post_save, sender=WeatherRecommendation, dispatch_uid="recommendation_created_notify")
def _recommendation_created(sender, instance: WeatherRecommendation, created: bool, raw=False, **kwargs) -> None:
    if created and not raw and instance.status == RecommendationStatus.PENDING:
        _enqueue("notify_recommendation_created", instance.pk)
