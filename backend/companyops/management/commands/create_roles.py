from __future__ import annotations

from django.contrib.auth.models import Group, Permission
from django.core.management.base import BaseCommand

from companyops.domain.models import Role

APP = "companyops"

READ_PERMS = {
    "view_personnel", "view_scheduleentry", "view_scheduleskip", "view_swaprequest",
    "view_libertyrequest", "view_uniform", "view_weatherrecommendation",
}

ROLE_DJANGO_PERMS = {
    Role.USER: READ_PERMS,
    Role.UNIFORM_ADMIN: READ_PERMS | {
        "add_uniform", "change_uniform", "change_weatherrecommendation", "view_settingsdocument",
    },
    Role.LEAVE_ADMIN: READ_PERMS | {"change_libertyrequest"},
    Role.CANDIDATE_LEADERSHIP: READ_PERMS | {
        "change_libertyrequest", "change_swaprequest",
        "add_scheduleentry", "change_scheduleentry", "add_scheduleskip", "delete_scheduleskip",
        "view_cqrosterentry", "change_cqrosterentry", "view_auditlog",
    },
}


class Command(BaseCommand):
    help = "Create/sync one auth group per role. Admin receives every permission."

    def handle(self, *args, **kwargs):
        admin, _ = Group.objects.get_or_create(name=Role.ADMIN)
        all_perms = Permission.objects.all()
        admin.permissions.set(all_perms)
        self.stdout.write(self.style.SUCCESS(f"[{Role.ADMIN}] total perms: {all_perms.count()}"))

        for role, codenames in ROLE_DJANGO_PERMS.items():
            group, _ = Group.objects.get_or_create(name=role)
            perms = Permission.objects.filter(content_type__app_label=APP, codename__in=codenames)
            group.permissions.set(perms)
            self.stdout.write(self.style.SUCCESS(f"[{role}] applied perms: {perms.count()}"))
            missing = codenames - set(perms.values_list("codename", flat=True))
            if missing:
                self.stdout.write(self.style.WARNING(f"[{role}] missing codenames (run migrations?): {sorted(missing)}"))

        self.stdout.write(self.style.SUCCESS("Roles created/updated."))
