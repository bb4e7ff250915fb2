"""Dashboard route - the current user's organised and joined activities."""

from flask import Blueprint, g, render_template

from sport_meetup.auth import login_required
from sport_meetup.listing import split_by_activity
from sport_meetup.models import Activity, Participant, db
from sport_meetup.recurrence import utcnow

bp = Blueprint("dashboard", __name__)


@bp.route("/dashboard")
@login_required
def index():
    """Render the dashboard.

    Activities are split into upcoming and past by series state rather than
    by anchor date, so a weekly series that started last month still counts
    as upcoming until its end date passes.
    """
    now = utcnow()
    uid = g.user.id

    organized = Activity.query.filter_by(organizer_id=uid).all()

    participating = (
        db.session.query(Activity)
        .join(Participant, Participant.activity_id == Activity.id)
        .filter(
            Participant.user_id == uid,
            Participant.status == "confirmed",
            Activity.organizer_id != uid,
        )
        .all()
    )

    upcoming_organized, past_organized = split_by_activity(organized, now)
    upcoming_participating, past_participating = split_by_activity(participating, now)

    total_participants = sum(len(a.confirmed_participants) for a in organized)

    return render_template(
        "dashboard.html",
        upcoming_organized=upcoming_organized,
        past_organized=past_organized,
        upcoming_participating=upcoming_participating,
        past_participating=past_participating,
        total_participants=total_participants,
    )
