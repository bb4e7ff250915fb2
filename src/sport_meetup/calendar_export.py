"""Calendar export: Google Calendar links and iCalendar (.ics) files.

These encode the recurrence *rule* for the calendar client to expand; they
never call the occurrence functions in :mod:`sport_meetup.recurrence`.
"""

from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from icalendar import Calendar, Event

# recurrence_type -> (FREQ, INTERVAL)
_RRULE_FREQ = {
    "daily": ("DAILY", 1),
    "weekly": ("WEEKLY", 1),
    "biweekly": ("WEEKLY", 2),
    "monthly": ("MONTHLY", 1),
}

DEFAULT_DURATION_MINUTES = 60


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


def _compact(value: datetime) -> str:
    """Format an instant as ``YYYYMMDDTHHMMSSZ``."""
    return value.strftime("%Y%m%dT%H%M%SZ")


def activity_end(start: datetime, duration_minutes: int = DEFAULT_DURATION_MINUTES) -> datetime:
    return start + timedelta(minutes=duration_minutes)


def recurrence_rule(activity) -> dict | None:
    """Return the RRULE parts for *activity*, or None if it does not recur."""
    if not activity.is_recurring or activity.recurrence_type not in _RRULE_FREQ:
        return None
    freq, interval = _RRULE_FREQ[activity.recurrence_type]
    rule = {"freq": freq, "interval": interval}
    if activity.recurrence_end_date is not None:
        rule["until"] = _as_utc(activity.recurrence_end_date)
    return rule


def rrule_string(activity) -> str:
    """Return e.g. ``FREQ=WEEKLY;INTERVAL=2;UNTIL=20240301T000000Z``, or ``""``."""
    rule = recurrence_rule(activity)
    if rule is None:
        return ""
    parts = [f"FREQ={rule['freq']}"]
    if rule["interval"] > 1:
        parts.append(f"INTERVAL={rule['interval']}")
    if "until" in rule:
        parts.append(f"UNTIL={_compact(rule['until'])}")
    return ";".join(parts)


def google_calendar_url(activity) -> str:
    """Build a Google Calendar "add event" link for *activity*."""
    start = activity.date
    params = {
        "action": "TEMPLATE",
        "text": activity.title,
        "dates": f"{_compact(start)}/{_compact(activity_end(start))}",
        "details": activity.description or "",
        "location": activity.location,
    }
    rule = rrule_string(activity)
    if rule:
        params["recur"] = f"RRULE:{rule}"
    return f"https://calendar.google.com/calendar/render?{urlencode(params)}"


def ics_content(activity, now: datetime) -> bytes:
    """Render *activity* as a single-event iCalendar document."""
    cal = Calendar()
    cal.add("prodid", "-//SportMeetup//Activity//EN")
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")

    event = Event()
    event.add("uid", f"activity-{activity.id}@sportmeetup")
    event.add("dtstamp", _as_utc(now))
    event.add("dtstart", _as_utc(activity.date))
    event.add("dtend", _as_utc(activity_end(activity.date)))
    event.add("summary", activity.title)
    event.add("description", activity.description or "")
    event.add("location", activity.location)

    rule = recurrence_rule(activity)
    if rule is not None:
        event.add("rrule", rule)

    cal.add_component(event)
    return cal.to_ical()
