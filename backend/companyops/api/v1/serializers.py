from rest_framework import serializers

from companyops.domain.models import (
    LibertyRequest,
    Personnel,
    ScheduleEntry,
    ScheduleSkip,
    SwapRequest,
    Uniform,
    WeatherRecommendation,
)

class PersonnelSerializer(serializers.ModelSerializer):
    display_name = serializers.CharField(read_only=True)

    class Meta:
        model = Personnel
        fields = ["id", "first_name", "last_name", "display_name", "rank", "email", "class_number", "role", "active"]
        read_only_fields = fields


class ScheduleEntrySerializer(serializers.ModelSerializer):
    shifts = serializers.SerializerMethodField()

    class Meta:
        model = ScheduleEntry
        fields = ["id", "date", "day_of_week", "status", "is_potential_skip_day", "skip_day_reason", "shifts"]
        read_only_fields = fields

    def get_shifts(self, obj: ScheduleEntry):
        shifts = {}
        for shift_type, position, person_id, name in obj.slots():
            shifts.setdefault(shift_type, {})[f"person{position}"] = {"id": person_id, "name": name}
        return shifts


class ScheduleSkipSerializer(serializers.ModelSerializer):
    class Meta:
        model = ScheduleSkip
        fields = ["id", "date", "reason", "skipped_by_name", "skipped_at"]
        read_only_fields = fields


class SwapRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = SwapRequest
        fields = [
            "id", "requester", "requester_name", "schedule", "schedule_date",
            "current_shift_type", "current_position", "current_person_name",
            "proposed_personnel", "proposed_personnel_name", "reason", "status",
            "approved_by_name", "approved_at", "rejected_by_name", "rejected_at", "rejection_reason",
            "cancelled_at", "created_at",
        ]
        read_only_fields = fields


class LibertyRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = LibertyRequest
        fields = [
            "id", "requester", "requester_name", "requester_email",
            "locations", "custom_location", "destination", "weekend_date",
            "departure_date", "departure_time", "return_date", "return_time",
            "contact_number", "purpose", "notes",
            "companions", "is_driver", "passenger_capacity", "time_slots", "join_requests",
            "status", "approved_by_name", "approver_initials", "approved_at",
            "rejected_by_name", "rejected_at", "rejection_reason",
            "cancelled_by_name", "cancelled_at", "cancel_reason",
            "created_on_behalf_of", "created_by_name", "last_edited_at", "created_at", "updated_at",
        ]
        read_only_fields = fields


class UniformSerializer(serializers.ModelSerializer):
    class Meta:
        model = Uniform
        fields = ["id", "name", "number", "description", "active"]
        read_only_fields = fields


class WeatherRecommendationSerializer(serializers.ModelSerializer):
    class Meta:
        model = WeatherRecommendation
        fields = [
            "id", "target_date", "target_slot", "weather", "current_weather", "astronomy",
            "uniform", "uniform_name", "uniform_number", "matched_rule_id", "matched_rule_name",
            "status", "triggered_by", "approved_at", "rejected_at", "rejection_reason",
            "superseded_at", "expires_at", "created_at",
        ]
        read_only_fields = fields
