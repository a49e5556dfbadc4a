from __future__ import annotations

from django.contrib.auth.models import User
from django.core.management.base import BaseCommand

from companyops.domain.models import CQRosterEntry, Personnel, Role, SettingsKey, ShiftType, Uniform
from companyops.domain.repositories import SettingsRepository

DEFAULT_PEOPLE = [
    ("Alex", "Carter", "CDT"), ("Jordan", "Reyes", "CDT"), ("Sam", "Nguyen", "CDT"),
    ("Taylor", "Brooks", "CDT"), ("Morgan", "Patel", "CDT"), ("Casey", "Kim", "CDT"),
    ("Riley", "Osei", "CDT"), ("Jamie", "Lopez", "CDT"),
]

DEFAULT_UNIFORMS = [
    ("1", "OCP"), ("2", "OCP with fleece"), ("3", "PT summer"), ("4", "PT winter"), ("5", "OCP with rain jacket"),
]

DEFAULT_RULES = [
    {
        "id": "rain", "name": "Rain", "enabled": True, "priority": 1, "uniformNumber": "5",
        "conditions": {"precipitation": {"types": ["rain"]}},
    },
    {
        "id": "cold", "name": "Cold", "enabled": True, "priority": 2, "uniformNumber": "2",
        "conditions": {"temperature": {"max": 45}},
    },
]


class Command(BaseCommand):
    help = "Seed demo data (admin, personnel, CQ roster, uniforms, weather rules). Idempotent."

    def add_arguments(self, parser):
        parser.add_argument("--admin-user", type=str, default="admin", help="Demo superuser username (default: admin).")
        parser.add_argument("--admin-email", type=str, default="admin@example.com", help="Demo superuser email.")
        parser.add_argument("--admin-pass", type=str, default="admin", help="Demo superuser password (default: admin).")
        parser.add_argument("--class-number", type=str, default="25-01", help="Class number for seeded personnel.")

    def handle(self, *args, **opts):
        admin_user = opts["admin_user"]
        user = User.objects.filter(username=admin_user).first()
        if user is None:
            user = User.objects.create_superuser(admin_user, opts["admin_email"], opts["admin_pass"])
            self.stdout.write(self.style.SUCCESS(f"Created superuser {admin_user}:{opts['admin_pass']}"))
        else:
            self.stdout.write(self.style.WARNING(f"Superuser {admin_user} already exists."))

        Personnel.objects.get_or_create(
            user=user,
            defaults={"first_name": "Admin", "last_name": "User", "email": opts["admin_email"], "role": Role.ADMIN},
        )

        people = []
        created_count = 0
        for first, last, rank in DEFAULT_PEOPLE:
            person, created = Personnel.objects.get_or_create(
                first_name=first, last_name=last,
                defaults={"rank": rank, "class_number": opts["class_number"], "role": Role.USER},
            )
            people.append(person)
            created_count += int(created)

        # two people per shift, two shifts per night
        roster_created = 0
        for i in range(0, len(people) - 3, 4):
            order = i // 4 + 1
            seats = [
                (ShiftType.SHIFT1, 1, people[i]), (ShiftType.SHIFT1, 2, people[i + 1]),
                (ShiftType.SHIFT2, 1, people[i + 2]), (ShiftType.SHIFT2, 2, people[i + 3]),
            ]
            for shift_type, position, person in seats:
                _, created = CQRosterEntry.objects.get_or_create(
                    order=order, shift_type=shift_type, position=position,
                    defaults={"personnel": person, "name": person.display_name},
                )
                roster_created += int(created)

        uniforms = {}
        for number, name in DEFAULT_UNIFORMS:
            uniform, _ = Uniform.objects.get_or_create(number=number, defaults={"name": name})
            uniforms[number] = uniform

        if not SettingsRepository.exists(SettingsKey.WEATHER_RULES):
            rules = [
                {**{k: v for k, v in rule.items() if k != "uniformNumber"}, "uniformId": uniforms[rule["uniformNumber"]].pk}
                for rule in DEFAULT_RULES
            ]
            SettingsRepository.put(SettingsKey.WEATHER_RULES, {"rules": rules, "defaultUniformId": uniforms["1"].pk})
        if not SettingsRepository.exists(SettingsKey.UOTD_SCHEDULE):
            SettingsRepository.put(SettingsKey.UOTD_SCHEDULE, {"slots": {
                "breakfast": {"time": "0600", "enabled": True},
                "lunch": {"time": "1100", "enabled": True},
                "dinner": {"time": "1600", "enabled": True},
            }})

        self.stdout.write(self.style.SUCCESS(
            f"Seed completed. personnel created={created_count}, roster seats created={roster_created}, "
            f"uniforms={Uniform.objects.count()}."
        ))
