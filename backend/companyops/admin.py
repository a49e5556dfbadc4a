from __future__ import annotations

from django.contrib import admin

from companyops.domain.models import (
    AuditLog,
    CQRosterEntry,
    LibertyRequest,
    Personnel,
    RecommendationStatus,
    RequestStatus,
    ScheduleEntry,
    ScheduleSkip,
    SettingsDocument,
    SwapRequest,
    Uniform,
    WeatherRecommendation,
)

# =========================
# Filters
# =========================

class WeekendFilter(admin.SimpleListFilter):
    title = "Weekend"
    parameter_name = "weekend"

    def lookups(self, request, model_admin):
        dates = (
            LibertyRequest.objects
            .order_by("-weekend_date")
            .values_list("weekend_date", flat=True)
            .distinct()[:12]
        )
        return [(d.isoformat(), d.strftime("%b %d, %Y")) for d in dates]

    def queryset(self, request, qs):
        val = self.value()
        if not val:
            return qs
        return qs.filter(weekend_date=val)

# =========================
# Personnel
# =========================

@admin.register(Personnel)
class PersonnelAdmin(admin.ModelAdmin):
    list_display = ("display_name", "rank", "class_number", "role", "email", "active")
    list_filter = ("role", "active", "class_number")
    search_fields = ("first_name", "last_name", "email", "class_number")
    ordering = ("last_name", "first_name")
    list_per_page = 50
    actions = ["activate_personnel", "deactivate_personnel"]

    @admin.action(description="Activate selected personnel")
    def activate_personnel(self, request, qs):
        qs.update(active=True)

    @admin.action(description="Deactivate selected personnel")
    def deactivate_personnel(self, request, qs):
        qs.update(active=False)

# =========================
# CQ
# =========================

@admin.register(CQRosterEntry)
class CQRosterEntryAdmin(admin.ModelAdmin):
    list_display = ("order", "shift_type", "position", "name", "personnel")
    list_filter = ("shift_type",)
    search_fields = ("name", "personnel__last_name")
    autocomplete_fields = ("personnel",)
    ordering = ("order", "shift_type", "position")


@admin.register(ScheduleEntry)
class ScheduleEntryAdmin(admin.ModelAdmin):
    list_display = (
        "date", "day_of_week", "status",
        "shift1_person1_name", "shift1_person2_name",
        "shift2_person1_name", "shift2_person2_name",
        "is_potential_skip_day",
    )
    list_filter = ("status", "is_potential_skip_day")
    search_fields = (
        "shift1_person1_name", "shift1_person2_name",
        "shift2_person1_name", "shift2_person2_name",
    )
    date_hierarchy = "date"
    ordering = ("-date",)
    list_per_page = 50
    autocomplete_fields = (
        "shift1_person1", "shift1_person2", "shift2_person1", "shift2_person2",
    )
    readonly_fields = ("imported_by", "updated_by", "created_at", "updated_at")


@admin.register(ScheduleSkip)
class ScheduleSkipAdmin(admin.ModelAdmin):
    list_display = ("date", "reason", "skipped_by_name", "skipped_at")
    ordering = ("-date",)
    readonly_fields = ("skipped_at",)


@admin.register(SwapRequest)
class SwapRequestAdmin(admin.ModelAdmin):
    list_display = (
        "schedule_date", "current_shift_type", "current_position",
        "requester_name", "proposed_personnel_name", "status", "created_at",
    )
    list_filter = ("status", "current_shift_type")
    search_fields = ("requester_name", "proposed_personnel_name")
    date_hierarchy = "created_at"
    ordering = ("-created_at",)
    list_select_related = ("requester", "schedule")
    list_per_page = 50

# =========================
# Liberty
# =========================

@admin.register(LibertyRequest)
class LibertyRequestAdmin(admin.ModelAdmin):
    list_display = (
        "requester_name", "weekend_date", "destination", "status",
        "is_driver", "approver_initials", "created_on_behalf_of", "created_at",
    )
    list_filter = ("status", "is_driver", "created_on_behalf_of", WeekendFilter)
    search_fields = ("requester_name", "requester_email", "destination")
    date_hierarchy = "created_at"
    ordering = ("-created_at",)
    list_select_related = ("requester",)
    list_per_page = 50
    readonly_fields = ("join_requests", "created_at", "updated_at")

    actions = ["mark_cancelled"]

    @admin.action(description="Mark as CANCELLED")
    def mark_cancelled(self, request, qs):
        qs.filter(status__in=[RequestStatus.PENDING, RequestStatus.APPROVED]).update(status=RequestStatus.CANCELLED)

# =========================
# Uniform of the day
# =========================

@admin.register(Uniform)
class UniformAdmin(admin.ModelAdmin):
    list_display = ("number", "name", "active")
    list_filter = ("active",)
    search_fields = ("number", "name")


@admin.register(WeatherRecommendation)
class WeatherRecommendationAdmin(admin.ModelAdmin):
    list_display = (
        "target_date", "target_slot", "uniform_number", "uniform_name",
        "matched_rule_name", "status", "is_active", "triggered_by", "created_at",
    )
    list_filter = ("status", "target_slot", "triggered_by")
    date_hierarchy = "target_date"
    ordering = ("-created_at",)
    readonly_fields = ("weather", "current_weather", "astronomy", "created_at")
    list_per_page = 50

    @admin.display(description="Active")
    def is_active(self, obj: WeatherRecommendation) -> bool:
        return obj.status in (RecommendationStatus.PENDING, RecommendationStatus.APPROVED)

# =========================
# Settings and audit
# =========================

@admin.register(SettingsDocument)
class SettingsDocumentAdmin(admin.ModelAdmin):
    list_display = ("key", "updated_at")
    readonly_fields = ("updated_at",)


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("action", "table", "record_id", "created_at", "author")
    list_filter = ("table", "action")
    search_fields = ("table", "record_id", "author__username")
    readonly_fields = ("action", "table", "record_id", "before", "after", "author", "created_at", "ip_address")
    date_hierarchy = "created_at"
    ordering = ("-created_at",)
    list_per_page = 50
