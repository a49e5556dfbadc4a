from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from django.contrib.auth.models import User
from django.core.validators import RegexValidator
from django.db import models
from django.db.models import Q

# =========================
# Canonical choices
# =========================

class Role(models.TextChoices):
    USER = "user", "User"
    UNIFORM_ADMIN = "uniform_admin", "Uniform Admin"
    LEAVE_ADMIN = "leave_admin", "Leave Admin"
    CANDIDATE_LEADERSHIP = "candidate_leadership", "Candidate Leadership"
    ADMIN = "admin", "Admin"

class ShiftType(models.TextChoices):
    SHIFT1 = "shift1", "Shift 1"
    SHIFT2 = "shift2", "Shift 2"

class ScheduleStatus(models.TextChoices):
    SCHEDULED = "scheduled", "Scheduled"
    ACTIVE = "active", "Active"
    COMPLETED = "completed", "Completed"

class RequestStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    CANCELLED = "cancelled", "Cancelled"

class RecommendationStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    SUPERSEDED = "superseded", "Superseded"

class MealSlot(models.TextChoices):
    BREAKFAST = "breakfast", "Breakfast"
    LUNCH = "lunch", "Lunch"
    DINNER = "dinner", "Dinner"

class JoinStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"

class SettingsKey(models.TextChoices):
    APP_CONFIG = "appConfig", "Application config"
    WEATHER_RULES = "weatherRules", "Weather rules"
    WEATHER_LOCATION = "weatherLocation", "Weather location"
    WEATHER_CACHE = "weatherCache", "Weather cache"
    UOTD_SCHEDULE = "uotdSchedule", "UOTD schedule"

LIBERTY_LOCATIONS = [
    ("shoppette", "Shoppette"),
    ("bx_commissary", "BX/Commissary"),
    ("gym", "Gym"),
    ("library", "Library"),
    ("px", "PX"),
    ("dfac", "DFAC"),
    ("off_post", "Off Post"),
    ("other", "Other"),
]

SHIFT_POSITIONS = (1, 2)
POSITION_CHOICES = [(1, "Person 1"), (2, "Person 2")]
ACTIVE_REQUEST_STATUSES = (RequestStatus.PENDING, RequestStatus.APPROVED)
ACTIVE_RECOMMENDATION_STATUSES = (RecommendationStatus.PENDING, RecommendationStatus.APPROVED)

class_number_validator = RegexValidator(
    regex=r"^\d{2}-\d{2}$",
    message="Class number must look like NN-NN (e.g. 25-03).",
)

# =========================
# Personnel
# =========================

class Personnel(models.Model):
    """A member of the unit. Carries the role used for every permission check."""
    user = models.OneToOneField(
        User, blank=True, null=True, on_delete=models.SET_NULL, related_name="personnel"
    )
    first_name = models.CharField(max_length=60)
    last_name = models.CharField(max_length=60, db_index=True)
    rank = models.CharField(max_length=30, blank=True, default="")
    email = models.EmailField(blank=True, null=True)
    class_number = models.CharField(
        max_length=5, blank=True, null=True, validators=[class_number_validator]
    )
    role = models.CharField(max_length=32, choices=Role.choices, default=Role.USER, db_index=True)
    fcm_tokens = models.JSONField(default=list, blank=True)
    active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Personnel"
        verbose_name_plural = "Personnel"
        ordering = ["last_name", "first_name"]
        indexes = [
            models.Index(fields=["role", "active"], name="personnel_role_active_idx"),
        ]

    def __str__(self):
        return self.display_name

    @property
    def display_name(self) -> str:
        """'First Last', falling back to the linked account's name, username or email."""
        full = f"{self.first_name} {self.last_name}".strip()
        if self.first_name and self.last_name:
            return full
        if self.user_id:
            account_name = self.user.get_full_name() or self.user.username
            if account_name:
                return account_name
        return full or self.email or f"personnel-{self.pk}"

    def as_participant(self) -> dict:
        return {"id": self.pk, "name": self.display_name, "rank": self.rank or ""}

# =========================
# CQ schedule
# =========================

class CQRosterEntry(models.Model):
    """One seat in the CQ rotation. Entries sharing an order make up one night."""
    order = models.PositiveIntegerField(db_index=True)
    shift_type = models.CharField(max_length=10, choices=ShiftType.choices)
    position = models.PositiveSmallIntegerField(choices=POSITION_CHOICES, default=1)
    personnel = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="roster_entries"
    )
    name = models.CharField(max_length=120, blank=True, default="")

    class Meta:
        verbose_name = "CQ roster entry"
        verbose_name_plural = "CQ roster"
        ordering = ["order", "shift_type", "position"]
        constraints = [
            models.UniqueConstraint(
                fields=("order", "shift_type", "position"), name="uniq_roster_order_shift_position"
            ),
        ]

    def __str__(self):
        return f"#{self.order} {self.shift_type}/{self.position} {self.name}"


class ScheduleEntry(models.Model):
    """One CQ night keyed by its start date.

    Shift 2 starts after midnight but is still stored on the entry of the date the
    night began, so "the shift starting tonight" may live on today's or tomorrow's entry.
    """
    date = models.DateField(unique=True)
    day_of_week = models.CharField(max_length=10, blank=True, default="")

    shift1_person1 = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    shift1_person1_name = models.CharField(max_length=120, blank=True, default="")
    shift1_person2 = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    shift1_person2_name = models.CharField(max_length=120, blank=True, default="")
    shift2_person1 = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    shift2_person1_name = models.CharField(max_length=120, blank=True, default="")
    shift2_person2 = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    shift2_person2_name = models.CharField(max_length=120, blank=True, default="")

    is_potential_skip_day = models.BooleanField(default=False)
    skip_day_reason = models.CharField(max_length=200, blank=True, null=True)
    status = models.CharField(
        max_length=12, choices=ScheduleStatus.choices, default=ScheduleStatus.SCHEDULED, db_index=True
    )

    imported_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    updated_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "CQ schedule entry"
        verbose_name_plural = "CQ schedule"
        ordering = ["date"]
        indexes = [
            models.Index(fields=["status", "date"], name="schedule_status_date_idx"),
        ]

    def __str__(self):
        return f"{self.date} ({self.status})"

    @staticmethod
    def slot_prefix(shift_type: str, position: int) -> str:
        if shift_type not in ShiftType.values or position not in SHIFT_POSITIONS:
            raise ValueError(f"Unknown slot {shift_type}/{position}")
        return f"{shift_type}_person{position}"

    def holder_id(self, shift_type: str, position: int) -> Optional[int]:
        return getattr(self, f"{self.slot_prefix(shift_type, position)}_id")

    def holder_name(self, shift_type: str, position: int) -> str:
        return getattr(self, f"{self.slot_prefix(shift_type, position)}_name") or ""

    def assign(
        self, shift_type: str, position: int, personnel: Optional[Personnel], name: Optional[str] = None
    ) -> List[str]:
        """Put a person (or nobody) in a slot. Returns the touched field names for save()."""
        prefix = self.slot_prefix(shift_type, position)
        setattr(self, prefix, personnel)
        if name is None:
            name = personnel.display_name if personnel else ""
        setattr(self, f"{prefix}_name", name)
        return [prefix, f"{prefix}_name"]

    def position_of(self, personnel_id: int, shift_type: str) -> Optional[int]:
        for pos in SHIFT_POSITIONS:
            if personnel_id is not None and self.holder_id(shift_type, pos) == personnel_id:
                return pos
        return None

    def partner_name(self, shift_type: str, position: int) -> str:
        return self.holder_name(shift_type, 2 if position == 1 else 1)

    def slots(self) -> List[Tuple[str, int, Optional[int], str]]:
        return [
            (st, pos, self.holder_id(st, pos), self.holder_name(st, pos))
            for st in ShiftType.values
            for pos in SHIFT_POSITIONS
        ]


class ScheduleSkip(models.Model):
    """A date taken out of the CQ rotation."""
    date = models.DateField(db_index=True)
    reason = models.CharField(max_length=200, blank=True, default="")
    skipped_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    skipped_by_name = models.CharField(max_length=120, blank=True, default="")
    skipped_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "CQ skip"
        verbose_name_plural = "CQ skips"
        ordering = ["date"]

    def __str__(self):
        return f"{self.date} {self.reason}"


class SwapRequest(models.Model):
    """A request to hand one CQ slot to somebody else."""
    requester = models.ForeignKey(Personnel, on_delete=models.CASCADE, related_name="swap_requests")
    requester_name = models.CharField(max_length=120, blank=True, default="")
    schedule = models.ForeignKey(ScheduleEntry, on_delete=models.CASCADE, related_name="swap_requests")
    schedule_date = models.DateField(blank=True, null=True)
    current_shift_type = models.CharField(max_length=10, choices=ShiftType.choices)
    current_position = models.PositiveSmallIntegerField(choices=POSITION_CHOICES)
    current_person_name = models.CharField(max_length=120, blank=True, default="")
    proposed_personnel = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    proposed_personnel_name = models.CharField(max_length=120)
    reason = models.TextField(blank=True, default="")
    status = models.CharField(
        max_length=12, choices=RequestStatus.choices, default=RequestStatus.PENDING, db_index=True
    )

    approved_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    approved_by_name = models.CharField(max_length=120, blank=True, default="")
    approved_at = models.DateTimeField(blank=True, null=True)
    rejected_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    rejected_by_name = models.CharField(max_length=120, blank=True, default="")
    rejected_at = models.DateTimeField(blank=True, null=True)
    rejection_reason = models.TextField(blank=True, null=True)
    cancelled_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "CQ swap request"
        verbose_name_plural = "CQ swap requests"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="swap_status_created_idx"),
        ]

    def __str__(self):
        return f"{self.requester_name} {self.schedule_date} {self.current_shift_type}/{self.current_position} -> {self.proposed_personnel_name} ({self.status})"

# =========================
# Liberty / pass requests
# =========================

class LibertyRequest(models.Model):
    """A weekend liberty request, optionally offering rides per time slot.

    ``time_slots`` items: {date, start_time, end_time, locations, participants}.
    ``participants`` / ``companions`` items: {id, name, rank[, joined_at]}.
    ``join_requests`` items: {user_id, user_name, user_rank, status, requested_at, ...}.
    """
    requester = models.ForeignKey(Personnel, on_delete=models.CASCADE, related_name="liberty_requests")
    requester_name = models.CharField(max_length=120, blank=True, default="")
    requester_email = models.EmailField(blank=True, null=True)

    locations = models.JSONField(default=list, blank=True)
    custom_location = models.CharField(max_length=120, blank=True, null=True)
    destination = models.CharField(max_length=255, blank=True, default="")
    weekend_date = models.DateField(db_index=True)
    departure_date = models.DateField(blank=True, null=True)
    departure_time = models.TimeField(blank=True, null=True)
    return_date = models.DateField(blank=True, null=True)
    return_time = models.TimeField(blank=True, null=True)
    contact_number = models.CharField(max_length=30, blank=True, null=True)
    purpose = models.CharField(max_length=255, blank=True, null=True)
    notes = models.TextField(blank=True, null=True)

    companions = models.JSONField(default=list, blank=True)
    is_driver = models.BooleanField(default=False)
    passenger_capacity = models.PositiveIntegerField(default=0)
    time_slots = models.JSONField(default=list, blank=True)
    join_requests = models.JSONField(default=list, blank=True)

    status = models.CharField(
        max_length=12, choices=RequestStatus.choices, default=RequestStatus.PENDING, db_index=True
    )
    approved_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    approved_by_name = models.CharField(max_length=120, blank=True, default="")
    approver_initials = models.CharField(max_length=4, blank=True, default="")
    approved_at = models.DateTimeField(blank=True, null=True)
    rejected_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    rejected_by_name = models.CharField(max_length=120, blank=True, default="")
    rejected_at = models.DateTimeField(blank=True, null=True)
    rejection_reason = models.TextField(blank=True, null=True)
    cancelled_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    cancelled_by_name = models.CharField(max_length=120, blank=True, default="")
    cancelled_at = models.DateTimeField(blank=True, null=True)
    cancel_reason = models.CharField(max_length=255, blank=True, null=True)

    created_on_behalf_of = models.BooleanField(default=False)
    created_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    created_by_name = models.CharField(max_length=120, blank=True, default="")
    last_edited_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    last_edited_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Liberty request"
        verbose_name_plural = "Liberty requests"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["requester", "weekend_date", "status"], name="liberty_req_weekend_idx"),
            models.Index(fields=["status", "weekend_date"], name="liberty_status_weekend_idx"),
        ]

    def __str__(self):
        return f"{self.requester_name} {self.weekend_date} ({self.status})"

    @property
    def expected_return(self) -> Optional[datetime]:
        if not self.return_date or not self.return_time:
            return None
        return datetime.combine(self.return_date, self.return_time)

# =========================
# Uniform of the day
# =========================

class Uniform(models.Model):
    name = models.CharField(max_length=120)
    number = models.CharField(max_length=20, blank=True, default="")
    description = models.TextField(blank=True, default="")
    active = models.BooleanField(default=True)

    class Meta:
        ordering = ["number", "name"]

    def __str__(self):
        return f"{self.number} {self.name}".strip()


class WeatherRecommendation(models.Model):
    """A uniform suggestion for one meal slot, waiting for (or past) human approval."""
    target_date = models.DateField(db_index=True)
    target_slot = models.CharField(max_length=10, choices=MealSlot.choices)
    weather = models.JSONField(default=dict, blank=True)
    current_weather = models.JSONField(blank=True, null=True)
    astronomy = models.JSONField(blank=True, null=True)

    uniform = models.ForeignKey(Uniform, blank=True, null=True, on_delete=models.SET_NULL, related_name="+")
    uniform_name = models.CharField(max_length=120, blank=True, default="")
    uniform_number = models.CharField(max_length=20, blank=True, default="")
    matched_rule_id = models.CharField(max_length=64, blank=True, null=True)
    matched_rule_name = models.CharField(max_length=120, default="Default")

    status = models.CharField(
        max_length=12, choices=RecommendationStatus.choices, default=RecommendationStatus.PENDING, db_index=True
    )
    triggered_by = models.CharField(max_length=10, default="scheduled")
    created_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    approved_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    approved_at = models.DateTimeField(blank=True, null=True)
    rejected_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    rejected_at = models.DateTimeField(blank=True, null=True)
    rejection_reason = models.TextField(blank=True, null=True)
    superseded_by = models.ForeignKey(
        Personnel, blank=True, null=True, on_delete=models.SET_NULL, related_name="+"
    )
    superseded_at = models.DateTimeField(blank=True, null=True)
    expires_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = "Weather recommendation"
        verbose_name_plural = "Weather recommendations"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=("target_date", "target_slot"),
                condition=Q(status__in=["pending", "approved"]),
                name="uniq_active_recommendation_per_slot",
            ),
        ]

    def __str__(self):
        return f"{self.target_date} {self.target_slot} {self.uniform_name} ({self.status})"

# =========================
# Settings documents and audit
# =========================

class SettingsDocument(models.Model):
    """Admin-editable configuration, one JSON document per key."""
    key = models.CharField(max_length=40, unique=True, choices=SettingsKey.choices)
    data = models.JSONField(default=dict, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Settings document"
        verbose_name_plural = "Settings documents"
        ordering = ["key"]

    def __str__(self):
        return self.key


class AuditLog(models.Model):
    """Create/update/delete trail for the operational models."""
    action = models.CharField(max_length=50, db_index=True)
    table = models.CharField(max_length=50, db_index=True)
    record_id = models.CharField(max_length=50)
    before = models.JSONField(blank=True, null=True)
    after = models.JSONField(blank=True, null=True)
    author = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    ip_address = models.GenericIPAddressField(blank=True, null=True)

    class Meta:
        verbose_name = "Audit entry"
        verbose_name_plural = "Audit log"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["table", "created_at"], name="audit_table_created_idx"),
            models.Index(fields=["action", "created_at"], name="audit_action_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.created_at:%Y-%m-%d %H:%M:%S} | {self.table}:{self.record_id} | {self.action}"
