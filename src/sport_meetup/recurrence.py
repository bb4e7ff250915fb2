"""Recurrence engine: next/upcoming occurrences of an activity series.

Every function is pure and takes ``now`` explicitly so that a single
request can evaluate many activities against one consistent clock
reading.  Instants are naive UTC datetimes throughout.

Monthly series step with ``relativedelta`` from the anchor, so the n-th
occurrence is ``anchor + n months`` clamped to the end of shorter months
(31 Jan -> 29 Feb -> 31 Mar).  The day of month never drifts.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from dateutil.relativedelta import relativedelta

RECURRENCE_TYPES = [
    ("daily", "Daily"),
    ("weekly", "Weekly"),
    ("biweekly", "Every 2 weeks"),
    ("monthly", "Monthly"),
]

_FIXED_STEPS = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    "biweekly": timedelta(days=14),
}
_LABELS = dict(RECURRENCE_TYPES)


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime, matching stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class Schedule:
    """The recurrence-relevant fields of an activity."""

    date: datetime
    is_recurring: bool = False
    recurrence_type: str | None = None
    recurrence_end_date: datetime | None = None


class OccurrenceKind(enum.Enum):
    ANCHOR = "anchor"  # not recurring, or unrecognised type
    NOT_STARTED = "not_started"
    NEXT = "next"
    ENDED = "ended"


@dataclass(frozen=True)
class Occurrence:
    kind: OccurrenceKind
    date: datetime


def _recurrence_type(activity) -> str | None:
    """Return the usable recurrence type, or None if the series is not recurring."""
    if not activity.is_recurring:
        return None
    rtype = activity.recurrence_type
    if rtype in _FIXED_STEPS or rtype == "monthly":
        return rtype
    return None


def _nth(anchor: datetime, rtype: str, n: int) -> datetime | None:
    """The n-th occurrence, or None once it would fall past ``datetime.max``."""
    try:
        if rtype == "monthly":
            return anchor + relativedelta(months=n)
        return anchor + _FIXED_STEPS[rtype] * n
    except (OverflowError, ValueError):
        # relativedelta reports year 10000 as ValueError
        return None


def _first_index_after(anchor: datetime, rtype: str, now: datetime) -> int:
    """Smallest n such that the n-th occurrence is strictly after *now*.

    If that occurrence is not representable, ``_nth`` returns None for it.
    """
    if anchor > now:
        return 0
    if rtype == "monthly":
        n = max((now.year - anchor.year) * 12 + now.month - anchor.month, 0)
        # At most two steps: occurrence n falls in now's month.
        while True:
            current = _nth(anchor, rtype, n)
            if current is None or current > now:
                return n
            n += 1
    return (now - anchor) // _FIXED_STEPS[rtype] + 1


def resolve(activity, now: datetime) -> Occurrence:
    """Classify where *now* falls in the activity's series.

    ``ANCHOR`` and ``ENDED`` both carry the anchor date; ``NOT_STARTED``
    carries the anchor as the first occurrence; ``NEXT`` carries the
    first occurrence strictly after *now*.
    """
    anchor = activity.date
    rtype = _recurrence_type(activity)
    if rtype is None:
        return Occurrence(OccurrenceKind.ANCHOR, anchor)

    end = activity.recurrence_end_date
    if end is not None and now > end:
        return Occurrence(OccurrenceKind.ENDED, anchor)
    if anchor > now:
        return Occurrence(OccurrenceKind.NOT_STARTED, anchor)

    candidate = _nth(anchor, rtype, _first_index_after(anchor, rtype, now))
    if candidate is None or (end is not None and candidate > end):
        return Occurrence(OccurrenceKind.ENDED, anchor)
    return Occurrence(OccurrenceKind.NEXT, candidate)


def next_occurrence(activity, now: datetime) -> datetime:
    """Return the next scheduled instant after *now*.

    The anchor date is returned unchanged when the activity is not
    recurring, has not started yet, or its series has ended.  Use
    :func:`resolve` to tell those cases apart.
    """
    return resolve(activity, now).date


def upcoming_occurrences(activity, now: datetime, limit: int = 5) -> list[datetime]:
    """Return up to *limit* strictly-future occurrences in ascending order.

    Non-recurring activities yield their single date whether or not it
    has passed.
    """
    anchor = activity.date
    rtype = _recurrence_type(activity)
    if rtype is None:
        return [anchor]

    end = activity.recurrence_end_date
    occurrences: list[datetime] = []
    n = _first_index_after(anchor, rtype, now)
    while len(occurrences) < limit:
        current = _nth(anchor, rtype, n)
        if current is None or (end is not None and current > end):
            break
        occurrences.append(current)
        n += 1
    return occurrences


def is_active(activity, now: datetime) -> bool:
    """Return True if the activity has an occurrence after *now* within its end date."""
    if not activity.is_recurring:
        return activity.date > now

    upcoming = next_occurrence(activity, now)
    end = activity.recurrence_end_date
    if end is not None and upcoming > end:
        return False
    return upcoming > now


def format_recurrence_type(value) -> str:
    """Human-readable label for a recurrence type; empty for anything unknown."""
    return _LABELS.get(value, "") if isinstance(value, str) else ""
