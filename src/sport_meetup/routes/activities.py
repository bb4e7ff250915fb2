"""Activity routes: listing, CRUD, join/leave and calendar export."""

import logging
import math
from datetime import date, datetime, time, timezone

from flask import Blueprint, Response, flash, g, redirect, render_template, request, url_for

from sport_meetup.auth import ensure_organizer, login_required
from sport_meetup.calendar_export import google_calendar_url, ics_content
from sport_meetup.listing import active_candidates, upcoming_listing
from sport_meetup.models import Activity, Participant, db
from sport_meetup.recurrence import OccurrenceKind, resolve, upcoming_occurrences, utcnow

logger = logging.getLogger(__name__)

_VALID_SPORT_TYPES = set(Activity.SPORT_TYPES)
_VALID_SKILL_LEVELS = {s for s, _ in Activity.SKILL_LEVELS}
_VALID_RECURRENCE_TYPES = {r for r, _ in Activity.RECURRENCE_TYPES}

UPCOMING_LIMIT = 5

bp = Blueprint("activities", __name__, url_prefix="/activities")


def _parse_day(value):
    """Parse a YYYY-MM-DD query parameter, returning None when blank or invalid."""
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _as_naive_utc(value: datetime) -> datetime:
    """Convert an offset-aware datetime to naive UTC; naive input is already UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _parse_end_date(value: str) -> datetime:
    """Parse a series end date.  A bare date covers that whole day."""
    if len(value) == 10:
        return datetime.combine(date.fromisoformat(value), time(23, 59, 59))
    return _as_naive_utc(datetime.fromisoformat(value))


def _parse_coordinate(value: str, limit: float):
    if not value.strip():
        return None
    number = float(value)
    if not math.isfinite(number) or abs(number) > limit:
        raise ValueError("Coordinate out of range.")
    return number


def _form_context(activity):
    """Return the template-context dict needed to render the activity form."""
    return dict(
        activity=activity,
        sport_types=Activity.SPORT_TYPES,
        skill_levels=Activity.SKILL_LEVELS,
        recurrence_types=Activity.RECURRENCE_TYPES,
    )


@bp.route("/")
def list_activities():
    """List upcoming activities with optional sport/skill/location/date filters.

    Date filters apply to each activity's next occurrence, not its anchor,
    so a weekly series shows up in any week it actually runs.
    """
    sport_filter = request.args.get("sport", "")
    skill_filter = request.args.get("skill", "")
    location_filter = request.args.get("location", "").strip()
    date_from = _parse_day(request.args.get("date_from"))
    date_to = _parse_day(request.args.get("date_to"))

    now = utcnow()
    query = active_candidates(Activity.query, now)

    if sport_filter:
        query = query.filter(Activity.sport_type == sport_filter)
    if skill_filter and skill_filter != "all":
        query = query.filter(Activity.skill_level == skill_filter.lower())
    if location_filter:
        query = query.filter(Activity.location.ilike(f"%{location_filter}%"))

    listed = upcoming_listing(query.all(), now, date_from=date_from, date_to=date_to)

    return render_template(
        "activities/list.html",
        listed=listed,
        sport_types=Activity.SPORT_TYPES,
        skill_levels=Activity.SKILL_LEVELS,
        sport_filter=sport_filter,
        skill_filter=skill_filter,
        location_filter=location_filter,
        date_from=date_from,
        date_to=date_to,
    )


@bp.route("/new", methods=["GET", "POST"])
@login_required
def create():
    """Show the new-activity form (GET) or save a new activity (POST)."""
    if request.method == "POST":
        return _save_activity(Activity())

    return render_template("activities/form.html", **_form_context(None))


@bp.route("/<int:activity_id>")
def detail(activity_id):
    """Show one activity with its next date and the next few occurrences."""
    activity = Activity.query.filter_by(id=activity_id).first_or_404()
    now = utcnow()

    occurrence = resolve(activity, now)
    upcoming = upcoming_occurrences(activity, now, UPCOMING_LIMIT) if activity.is_recurring else []

    user = g.user
    is_organizer = user is not None and activity.organizer_id == user.id
    is_participant = user is not None and activity.has_participant(user.id)

    return render_template(
        "activities/detail.html",
        activity=activity,
        next_date=occurrence.date,
        series_ended=occurrence.kind is OccurrenceKind.ENDED,
        is_past=not activity.is_recurring and activity.date < now,
        upcoming=upcoming,
        participants=activity.confirmed_participants,
        is_organizer=is_organizer,
        is_participant=is_participant,
        google_url=google_calendar_url(activity),
    )


@bp.route("/<int:activity_id>/edit", methods=["GET", "POST"])
@login_required
def edit(activity_id):
    """Show the edit form (GET) or save changes (POST).  Organizer only."""
    activity = Activity.query.filter_by(id=activity_id).first_or_404()
    ensure_organizer(activity)

    if request.method == "POST":
        return _save_activity(activity)

    return render_template("activities/form.html", **_form_context(activity))


@bp.route("/<int:activity_id>/delete", methods=["POST"])
@login_required
def delete(activity_id):
    """Delete an activity and its participants.  Organizer only."""
    activity = Activity.query.filter_by(id=activity_id).first_or_404()
    ensure_organizer(activity)
    db.session.delete(activity)
    db.session.commit()
    logger.info("Activity deleted: activity_id=%s user_id=%s", activity_id, g.user.id)
    flash("Activity deleted.", "info")
    return redirect(url_for("dashboard.index"))


@bp.route("/<int:activity_id>/join", methods=["POST"])
@login_required
def join(activity_id):
    """Add the current user to an activity if there is room."""
    from sport_meetup.app import _is_unique_constraint_error

    activity = Activity.query.filter_by(id=activity_id).first_or_404()
    detail_url = url_for("activities.detail", activity_id=activity.id)

    if Participant.query.filter_by(activity_id=activity.id, user_id=g.user.id).first():
        flash("You have already joined this activity.", "error")
        return redirect(detail_url)

    if len(activity.confirmed_participants) >= activity.max_participants:
        flash("This activity is full.", "error")
        return redirect(detail_url)

    db.session.add(Participant(activity_id=activity.id, user_id=g.user.id, status="confirmed"))
    try:
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        if not _is_unique_constraint_error(exc):
            raise
        flash("You have already joined this activity.", "error")
        return redirect(detail_url)

    logger.info("Joined activity: activity_id=%s user_id=%s", activity.id, g.user.id)
    flash("You're in! See you there.", "success")
    return redirect(detail_url)


@bp.route("/<int:activity_id>/leave", methods=["POST"])
@login_required
def leave(activity_id):
    """Remove the current user from an activity.  Organizers cannot leave."""
    activity = Activity.query.filter_by(id=activity_id).first_or_404()
    detail_url = url_for("activities.detail", activity_id=activity.id)

    if activity.organizer_id == g.user.id:
        flash("Organizers cannot leave their own activity.", "error")
        return redirect(detail_url)

    participant = Participant.query.filter_by(activity_id=activity.id, user_id=g.user.id).first()
    if participant is None:
        flash("You are not a participant of this activity.", "error")
        return redirect(detail_url)

    db.session.delete(participant)
    db.session.commit()
    logger.info("Left activity: activity_id=%s user_id=%s", activity.id, g.user.id)
    flash("You have left this activity.", "info")
    return redirect(detail_url)


@bp.route("/<int:activity_id>/calendar.ics")
def export_ics(activity_id):
    """Download the activity (and its recurrence rule) as an .ics file."""
    activity = Activity.query.filter_by(id=activity_id).first_or_404()
    return Response(
        ics_content(activity, utcnow()),
        mimetype="text/calendar",
        headers={"Content-Disposition": f"attachment; filename=activity-{activity.id}.ics"},
    )


def _save_activity(activity):
    """Validate form data then save or update *activity*.

    Returns a redirect on success.  On validation failure, flashes error
    messages and re-renders the form with HTTP 422 so no DB write occurs.
    """
    errors = []

    # --- Required text fields ---
    title = request.form.get("title", "").strip()
    description = request.form.get("description", "").strip()
    location = request.form.get("location", "").strip()
    if not title:
        errors.append("Title is required.")
    if not description:
        errors.append("Description is required.")
    if not location:
        errors.append("Location is required.")

    # --- Sport and skill ---
    sport_type = request.form.get("sport_type", "")
    if sport_type not in _VALID_SPORT_TYPES:
        errors.append(f"Sport '{sport_type}' is not recognised.")
    skill_level = request.form.get("skill_level", "all")
    if skill_level not in _VALID_SKILL_LEVELS:
        errors.append(f"Skill level '{skill_level}' is not recognised.")

    # --- Date ---
    try:
        start = _as_naive_utc(datetime.fromisoformat(request.form["date"]))
    except (ValueError, KeyError):
        errors.append("Date and time are invalid or missing.")
        start = None

    # --- Capacity ---
    try:
        max_participants = int(request.form["max_participants"])
        if max_participants <= 0:
            raise ValueError("Capacity must be positive.")
    except (ValueError, KeyError):
        errors.append("Max participants must be a whole number greater than zero.")
        max_participants = None
    if max_participants is not None and activity.id:
        confirmed = len(activity.confirmed_participants)
        if max_participants < confirmed:
            errors.append(f"Max participants cannot be below the {confirmed} people already joined.")

    # --- Coordinates (optional) ---
    try:
        latitude = _parse_coordinate(request.form.get("latitude", ""), 90)
        longitude = _parse_coordinate(request.form.get("longitude", ""), 180)
    except ValueError:
        errors.append("Latitude and longitude must be valid coordinates.")
        latitude = longitude = None

    # --- Recurrence ---
    is_recurring = request.form.get("is_recurring") == "on"
    recurrence_type = None
    recurrence_end_date = None
    if is_recurring:
        recurrence_type = request.form.get("recurrence_type", "")
        if recurrence_type not in _VALID_RECURRENCE_TYPES:
            errors.append("Recurring activities need a repeat frequency.")
        try:
            recurrence_end_date = _parse_end_date(request.form.get("recurrence_end_date", ""))
        except ValueError:
            errors.append("Recurring activities need a valid end date.")
        if start and recurrence_end_date and recurrence_end_date <= start:
            errors.append("The series end date must be after the first occurrence.")

    # --- Populate submitted values so re-renders are pre-filled ---
    activity.title = title
    activity.description = description
    activity.location = location
    activity.sport_type = sport_type
    activity.skill_level = skill_level
    activity.date = start
    activity.max_participants = max_participants
    activity.latitude = latitude
    activity.longitude = longitude
    activity.is_recurring = is_recurring
    activity.recurrence_type = recurrence_type
    activity.recurrence_end_date = recurrence_end_date
    activity.recurrence_day = start.weekday() if is_recurring and start else None

    # --- Early return on errors (no DB writes have occurred) ---
    if errors:
        for msg in errors:
            flash(msg, "error")
        return render_template("activities/form.html", **_form_context(activity)), 422

    if not activity.id:
        activity.organizer_id = g.user.id
        # The organizer always holds the first place
        activity.participants.append(Participant(user_id=g.user.id, status="confirmed"))
        db.session.add(activity)
        logger.info("Activity created: recurring=%s user_id=%s", is_recurring, g.user.id)

    db.session.commit()
    flash("Activity saved.", "success")
    return redirect(url_for("activities.detail", activity_id=activity.id))
