"""Public landing page."""

from flask import Blueprint, render_template

from sport_meetup.listing import active_candidates, upcoming_listing
from sport_meetup.models import Activity
from sport_meetup.recurrence import utcnow

bp = Blueprint("landing", __name__)

FEATURED_COUNT = 6


@bp.route("/")
def index():
    """Show the soonest upcoming activities to everyone, signed in or not."""
    now = utcnow()
    featured = upcoming_listing(active_candidates(Activity.query, now).all(), now)[:FEATURED_COUNT]
    return render_template("landing.html", featured=featured, sport_types=Activity.SPORT_TYPES)
