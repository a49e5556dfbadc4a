from __future__ import annotations

from typing import Any, Dict, List, Optional

from django import forms

from companyops.domain.models import (
    LIBERTY_LOCATIONS,
    POSITION_CHOICES,
    Personnel,
    ShiftType,
)
from companyops.utils import _parse_hhmm, _parse_iso_date

LOCATION_VALUES = {value for value, _ in LIBERTY_LOCATIONS}
SATURDAY = 5

# ===== Personnel =====

class PersonnelForm(forms.ModelForm):
    class Meta:
        model = Personnel
        fields = ["first_name", "last_name", "rank", "email", "class_number", "role", "active"]
        help_texts = {
            "class_number": "Format NN-NN (e.g. 25-03).",
        }

    def clean_first_name(self) -> str:
        return (self.cleaned_data.get("first_name") or "").strip()

    def clean_last_name(self) -> str:
        return (self.cleaned_data.get("last_name") or "").strip()

    def clean_email(self) -> Optional[str]:
        email = self.cleaned_data.get("email")
        return (email or "").strip().lower() or None

    def clean_class_number(self) -> Optional[str]:
        value = self.cleaned_data.get("class_number")
        return (value or "").strip() or None

# ===== CQ schedule =====

class SkipDateForm(forms.Form):
    date = forms.DateField()
    reason = forms.CharField(max_length=200)

    def clean_reason(self) -> str:
        reason = (self.cleaned_data.get("reason") or "").strip()
        if not reason:
            raise forms.ValidationError("A reason is required to skip a date.")
        return reason


class GenerateScheduleForm(forms.Form):
    start = forms.DateField()
    days = forms.IntegerField(min_value=1, max_value=366, required=False)

    def clean_days(self) -> int:
        return self.cleaned_data.get("days") or 30


class ShiftAssignmentForm(forms.Form):
    shift_type = forms.ChoiceField(choices=ShiftType.choices)
    position = forms.TypedChoiceField(choices=POSITION_CHOICES, coerce=int)
    personnel_id = forms.IntegerField(required=False)
    name = forms.CharField(max_length=120, required=False)

    def clean(self):
        data = super().clean()
        pid = data.get("personnel_id")
        if pid and not Personnel.objects.filter(pk=pid).exists():
            self.add_error("personnel_id", "Unknown personnel.")
        return data


class SwapRequestForm(forms.Form):
    schedule_id = forms.IntegerField()
    shift_type = forms.ChoiceField(choices=ShiftType.choices)
    position = forms.TypedChoiceField(choices=POSITION_CHOICES, coerce=int)
    proposed_personnel_id = forms.IntegerField(required=False)
    proposed_personnel_name = forms.CharField(max_length=120, required=False)
    reason = forms.CharField(required=False, widget=forms.Textarea)

    def clean(self):
        data = super().clean()
        pid = data.get("proposed_personnel_id")
        name = (data.get("proposed_personnel_name") or "").strip()
        if pid:
            person = Personnel.objects.filter(pk=pid, active=True).first()
            if person is None:
                self.add_error("proposed_personnel_id", "Unknown or inactive personnel.")
            elif not name:
                name = person.display_name
        if not pid and not name:
            raise forms.ValidationError("Choose who should take the shift.")
        data["proposed_personnel_name"] = name
        return data

# ===== Liberty =====

class TimeSlotForm(forms.Form):
    """One window of a liberty request: {date, start_time, end_time, locations}."""
    date = forms.DateField()
    start_time = forms.CharField(max_length=5)
    end_time = forms.CharField(max_length=5)
    locations = forms.JSONField(required=False)

    def _clean_hhmm(self, name: str) -> str:
        raw = self.cleaned_data.get(name)
        try:
            return _parse_hhmm(raw).strftime("%H:%M")
        except (TypeError, ValueError):
            raise forms.ValidationError("Time must be HH:MM.")

    def clean_start_time(self) -> str:
        return self._clean_hhmm("start_time")

    def clean_end_time(self) -> str:
        return self._clean_hhmm("end_time")

    def clean_locations(self) -> List[str]:
        return _clean_location_list(self.cleaned_data.get("locations"))


def _clean_location_list(value: Any) -> List[str]:
    if value in (None, ""):
        return []
    if not isinstance(value, list):
        raise forms.ValidationError("Locations must be a list.")
    unknown = [v for v in value if v not in LOCATION_VALUES]
    if unknown:
        raise forms.ValidationError(f"Unknown location(s): {', '.join(map(str, unknown))}")
    # keep first-seen order
    return list(dict.fromkeys(value))


def _person_id(value: Any, label: str) -> int:
    """Personnel pk from a client-supplied id; "12" and 12 are the same person."""
    if isinstance(value, bool):
        raise forms.ValidationError(f"{label} id must be an integer.")
    try:
        pk = int(str(value).strip())
    except ValueError:
        raise forms.ValidationError(f"{label} id must be an integer.")
    if pk <= 0:
        raise forms.ValidationError(f"{label} id must be an integer.")
    return pk


def _clean_people(value: Any, label: str) -> List[Dict[str, Any]]:
    if value in (None, ""):
        return []
    if not isinstance(value, list) or not all(isinstance(p, dict) and p.get("id") for p in value):
        raise forms.ValidationError(f"{label} must be a list of {{id, name, rank}}.")
    people = []
    for p in value:
        person = {"id": _person_id(p["id"], label), "name": p.get("name") or "", "rank": p.get("rank") or ""}
        if p.get("joined_at"):
            person["joined_at"] = p["joined_at"]
        people.append(person)
    if len({p["id"] for p in people}) != len(people):
        raise forms.ValidationError(f"{label} lists the same person more than once.")
    return people


class LibertyRequestForm(forms.Form):
    weekend_date = forms.DateField()
    locations = forms.JSONField(required=False)
    custom_location = forms.CharField(max_length=120, required=False)
    time_slots = forms.JSONField(required=False)
    contact_number = forms.CharField(max_length=30, required=False)
    purpose = forms.CharField(max_length=255, required=False)
    notes = forms.CharField(required=False, widget=forms.Textarea)
    companions = forms.JSONField(required=False)
    is_driver = forms.BooleanField(required=False)
    passenger_capacity = forms.IntegerField(min_value=0, max_value=15, required=False)
    force_submit = forms.BooleanField(required=False)

    def clean_weekend_date(self):
        d = self.cleaned_data.get("weekend_date")
        if d and d.weekday() != SATURDAY:
            raise forms.ValidationError("Weekend date must be the Saturday of the weekend.")
        return d

    def clean_locations(self) -> List[str]:
        return _clean_location_list(self.cleaned_data.get("locations"))

    def clean_companions(self) -> List[Dict[str, Any]]:
        return _clean_people(self.cleaned_data.get("companions"), "Companions")

    def clean_custom_location(self) -> Optional[str]:
        return (self.cleaned_data.get("custom_location") or "").strip() or None

    def clean_time_slots(self) -> List[Dict[str, Any]]:
        raw = self.cleaned_data.get("time_slots")
        if raw in (None, ""):
            return []
        if not isinstance(raw, list):
            raise forms.ValidationError("Time slots must be a list.")
        slots: List[Dict[str, Any]] = []
        messages: List[str] = []
        for i, item in enumerate(raw):
            if not isinstance(item, dict):
                messages.append(f"Slot {i + 1}: expected an object.")
                continue
            sub = TimeSlotForm(data=item)
            if not sub.is_valid():
                for field_name, errs in sub.errors.items():
                    messages.extend(f"Slot {i + 1} {field_name}: {e}" for e in errs)
                continue
            slot = dict(sub.cleaned_data)
            slot["date"] = slot["date"].isoformat()
            slot["participants"] = _clean_people(item.get("participants"), "Participants")
            slots.append(slot)
        if messages:
            raise forms.ValidationError(messages)
        return slots

    def clean(self):
        data = super().clean()
        slots = data.get("time_slots") or []
        locations = data.get("locations") or []
        if not slots and not locations:
            raise forms.ValidationError("Pick at least one location or time slot.")

        used = set(locations) | {loc for s in slots for loc in s.get("locations", [])}
        if "other" in used and not data.get("custom_location"):
            self.add_error("custom_location", "Describe the location when choosing Other.")

        weekend = data.get("weekend_date")
        if weekend:
            for s in slots:
                slot_day = _parse_iso_date(s["date"])
                if not (0 <= (slot_day - weekend).days <= 2):
                    self.add_error("time_slots", f"Slot date {s['date']} is outside that weekend.")
                    break

        if not data.get("is_driver"):
            data["passenger_capacity"] = 0
        else:
            data["passenger_capacity"] = data.get("passenger_capacity") or 0
        return data


