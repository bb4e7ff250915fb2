"""Listing helpers: attach next occurrences to activities, filter and sort them."""

from dataclasses import dataclass
from datetime import date, datetime, time

from sqlalchemy import and_, or_

from sport_meetup.models import Activity
from sport_meetup.recurrence import is_active, next_occurrence


def active_candidates(query, now: datetime):
    """Narrow *query* to rows that may still have a future occurrence.

    This is a coarse storage-side prefilter; :func:`upcoming_listing` makes
    the exact decision per activity.
    """
    return query.filter(
        or_(
            and_(Activity.is_recurring.is_(False), Activity.date > now),
            and_(
                Activity.is_recurring.is_(True),
                or_(Activity.recurrence_end_date.is_(None), Activity.recurrence_end_date > now),
            ),
        )
    )


@dataclass
class ListedActivity:
    activity: object
    next_date: datetime


def upcoming_listing(activities, now: datetime, date_from: date | None = None,
                     date_to: date | None = None) -> list[ListedActivity]:
    """Return active *activities* sorted by next occurrence.

    *date_from* and *date_to* are whole days compared against the next
    occurrence; *date_to* includes the full day.  The same *now* is used
    for every activity so the order is consistent within one request.
    """
    listed = [
        ListedActivity(a, next_occurrence(a, now))
        for a in activities
        if is_active(a, now)
    ]
    if date_from is not None:
        lower = datetime.combine(date_from, time.min)
        listed = [item for item in listed if item.next_date >= lower]
    if date_to is not None:
        upper = datetime.combine(date_to, time.max)
        listed = [item for item in listed if item.next_date <= upper]
    listed.sort(key=lambda item: item.next_date)
    return listed


def split_by_activity(activities, now: datetime) -> tuple[list, list]:
    """Partition *activities* into (upcoming, past) using the series state at *now*.

    Upcoming entries are sorted by next occurrence; past ones newest first.
    """
    upcoming, past = [], []
    for a in activities:
        if is_active(a, now):
            upcoming.append(ListedActivity(a, next_occurrence(a, now)))
        else:
            past.append(ListedActivity(a, a.date))
    upcoming.sort(key=lambda item: item.next_date)
    past.sort(key=lambda item: item.next_date, reverse=True)
    return upcoming, past
