"""Auth helpers: login_required decorator and organizer check."""

from functools import wraps

from flask import abort, g, redirect, request, session, url_for


def login_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        if g.user is None:
            session["next"] = request.url
            return redirect(url_for("auth.login"))
        return f(*args, **kwargs)

    return decorated


def ensure_organizer(activity):
    """Abort with 403 unless the current user organises *activity*."""
    if g.user is None or activity.organizer_id != g.user.id:
        abort(403)
