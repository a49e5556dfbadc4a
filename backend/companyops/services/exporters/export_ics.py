from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from django.utils.timezone import now as tz_now
from icalendar import Calendar, Event, vCalAddress, vText

from companyops.domain.models import ScheduleEntry, ShiftType
from companyops.domain.repositories import PersonnelRepository, ScheduleRepository, SettingsRepository
from companyops.services import timezone as tz
from companyops.services.cq_schedule import shift_times
from companyops.utils import _get_setting, _parse_hhmm


def _shift_span(entry: ScheduleEntry, shift_type: str, times, zone) -> tuple:
    """Start and end of a shift; shift 2 starts after midnight of the entry's date."""
    start_t, end_t = _parse_hhmm(times["start"]), _parse_hhmm(times["end"])
    start_day = entry.date + timedelta(days=1) if shift_type == ShiftType.SHIFT2 else entry.date
    start = datetime.combine(start_day, start_t, tzinfo=zone)
    end = datetime.combine(start_day, end_t, tzinfo=zone)
    if end <= start:
        end += timedelta(days=1)
    return start, end


def export_schedule_ics(start: Optional[date] = None, end: Optional[date] = None) -> bytes:
    """Export CQ shifts as an iCalendar feed, one event per staffed shift.

    Args:
        start (Optional[date]): First entry date, inclusive.
        end (Optional[date]): Last entry date, inclusive.

    Returns:
        bytes: The .ics content.
    """
    config = SettingsRepository.app_config()
    zone_name = tz.configured_timezone(config)
    zone = tz.get_zone(zone_name)

    cal = Calendar()
    cal.add("prodid", "-//Company Ops//CQ Schedule//EN")
    cal.add("version", "2.0")
    cal.add("X-WR-CALNAME", "CQ Schedule")
    cal.add("X-WR-TIMEZONE", zone_name)

    location = _get_setting("CALENDAR_LOCATION", None)
    stamp = tz_now()

    for entry in ScheduleRepository.between(start, end):
        for shift_type in ShiftType.values:
            names = [entry.holder_name(shift_type, pos) for pos in (1, 2)]
            names = [n for n in names if n]
            if not names:
                continue
            times = shift_times(shift_type, config)
            dtstart, dtend = _shift_span(entry, shift_type, times, zone)

            ev = Event()
            ev.add("uid", f"cq-{entry.pk}-{shift_type}@companyops.local")
            ev.add("dtstamp", stamp)
            ev.add("dtstart", dtstart)
            ev.add("dtend", dtend)
            ev.add("categories", ["CQ"])
            label = ShiftType(shift_type).label
            ev.add("summary", f"CQ {label}: {' / '.join(names)}")

            desc = [
                f"Night of {entry.date:%a %d %b %Y}",
                f"{label}: {times['start']}-{times['end']}",
                f"Status: {entry.get_status_display()}",
            ]
            if entry.is_potential_skip_day:
                desc.append(f"Potential skip day: {entry.skip_day_reason or 'no reason given'}")
            ev.add("description", "\n".join(desc))
            if location:
                ev.add("location", location)

            for pos in (1, 2):
                person = PersonnelRepository.find(entry.holder_id(shift_type, pos))
                if person is not None and person.email:
                    attendee = vCalAddress(f"MAILTO:{person.email}")
                    attendee.params["cn"] = vText(person.display_name)
                    attendee.params["role"] = vText("REQ-PARTICIPANT")
                    ev.add("attendee", attendee, encode=0)

            cal.add_component(ev)

    return cal.to_ical()
