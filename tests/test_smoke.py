"""Smoke tests: app factory boots, key routes respond, activity CRUD happy path."""

import json
from datetime import datetime, timedelta

from sport_meetup.recurrence import utcnow


def _form(**overrides):
    start = utcnow() + timedelta(days=5)
    data = {
        "title": "Saturday doubles",
        "description": "Friendly tennis, bring balls",
        "sport_type": "Tennis",
        "skill_level": "intermediate",
        "location": "Elm Street Courts",
        "date": start.strftime("%Y-%m-%dT%H:%M"),
        "max_participants": "4",
    }
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def test_app_boots(app):
    """Application factory returns a Flask app."""
    assert app is not None
    assert app.testing is True


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


def test_healthz_ok(client):
    """GET /healthz returns 200 with status=ok and db=connected."""
    resp = client.get("/healthz")
    assert resp.status_code == 200
    data = json.loads(resp.data)
    assert data["status"] == "ok"
    assert data["db"] == "connected"
    assert "version" in data


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


def test_landing_page(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert b"Coming up" in resp.data


def test_activities_list_accessible(client):
    resp = client.get("/activities/")
    assert resp.status_code == 200


def test_dashboard_accessible(client):
    resp = client.get("/dashboard")
    assert resp.status_code == 200


def test_create_form_accessible(client):
    resp = client.get("/activities/new")
    assert resp.status_code == 200
    assert b"Create Activity" in resp.data


def test_login_page_redirects_signed_in_user(client):
    resp = client.get("/auth/login", follow_redirects=False)
    assert resp.status_code == 302
    assert "/dashboard" in resp.headers["Location"]


def test_google_login_without_credentials_flashes_error(client):
    client.get("/auth/logout")
    resp = client.get("/auth/google", follow_redirects=False)
    assert resp.status_code == 302
    assert "/auth/login" in resp.headers["Location"]


# ---------------------------------------------------------------------------
# Activity CRUD: happy path
# ---------------------------------------------------------------------------


def test_create_activity_happy_path(client):
    """POST to /activities/new with valid data redirects to the detail page."""
    resp = client.post("/activities/new", data=_form(), follow_redirects=True)
    assert resp.status_code == 200
    assert b"Saturday doubles" in resp.data
    assert b"Activity saved." in resp.data


def test_create_activity_adds_organizer_as_participant(client, app):
    client.post("/activities/new", data=_form())
    with app.app_context():
        from sport_meetup.models import Activity
        activity = Activity.query.filter_by(title="Saturday doubles").one()
        assert len(activity.confirmed_participants) == 1
        assert activity.confirmed_participants[0].user_id == activity.organizer_id
        assert activity.is_recurring is False
        assert activity.recurrence_type is None


def test_create_recurring_activity(client, app):
    start = utcnow() + timedelta(days=1)
    end = (start + timedelta(days=60)).date()
    resp = client.post(
        "/activities/new",
        data=_form(
            date=start.strftime("%Y-%m-%dT%H:%M"),
            is_recurring="on",
            recurrence_type="weekly",
            recurrence_end_date=end.isoformat(),
        ),
        follow_redirects=True,
    )
    assert resp.status_code == 200
    assert b"Weekly" in resp.data
    assert b"Upcoming dates" in resp.data
    with app.app_context():
        from sport_meetup.models import Activity
        activity = Activity.query.filter_by(title="Saturday doubles").one()
        assert activity.recurrence_type == "weekly"
        assert activity.recurrence_day == start.weekday()
        # A bare end date covers the whole day
        assert activity.recurrence_end_date.date() == end
        assert activity.recurrence_end_date.hour == 23


# ---------------------------------------------------------------------------
# Activity validation: bad inputs must return 422 without writing to DB
# ---------------------------------------------------------------------------


def test_create_activity_invalid_date_returns_422(client):
    resp = client.post("/activities/new", data=_form(date="not-a-date"))
    assert resp.status_code == 422


def test_create_activity_missing_title_returns_422(client):
    resp = client.post("/activities/new", data=_form(title=""))
    assert resp.status_code == 422


def test_create_activity_zero_capacity_returns_422(client):
    resp = client.post("/activities/new", data=_form(max_participants="0"))
    assert resp.status_code == 422


def test_create_activity_invalid_sport_returns_422(client):
    resp = client.post("/activities/new", data=_form(sport_type="Quidditch"))
    assert resp.status_code == 422


def test_create_activity_bad_coordinates_returns_422(client):
    resp = client.post("/activities/new", data=_form(latitude="123.4", longitude="0"))
    assert resp.status_code == 422


def test_recurring_without_end_date_returns_422(client):
    resp = client.post(
        "/activities/new",
        data=_form(is_recurring="on", recurrence_type="weekly", recurrence_end_date=""),
    )
    assert resp.status_code == 422
    assert b"valid end date" in resp.data


def test_recurring_without_type_returns_422(client):
    end = (utcnow() + timedelta(days=60)).date().isoformat()
    resp = client.post(
        "/activities/new",
        data=_form(is_recurring="on", recurrence_type="", recurrence_end_date=end),
    )
    assert resp.status_code == 422


def test_recurring_end_before_start_returns_422(client):
    start = utcnow() + timedelta(days=10)
    resp = client.post(
        "/activities/new",
        data=_form(
            date=start.strftime("%Y-%m-%dT%H:%M"),
            is_recurring="on",
            recurrence_type="daily",
            recurrence_end_date=(start - timedelta(days=2)).date().isoformat(),
        ),
    )
    assert resp.status_code == 422


def test_invalid_submission_writes_nothing(client, app):
    client.post("/activities/new", data=_form(title="Ghost", max_participants="-3"))
    with app.app_context():
        from sport_meetup.models import Activity
        assert Activity.query.filter_by(title="Ghost").count() == 0


def test_offset_dates_are_stored_as_utc(client, app):
    resp = client.post(
        "/activities/new",
        data=_form(
            date="2030-05-01T10:00:00+02:00",
            is_recurring="on",
            recurrence_type="weekly",
            recurrence_end_date="2030-06-01T12:00:00+02:00",
        ),
    )
    assert resp.status_code == 302
    with app.app_context():
        from sport_meetup.models import Activity
        activity = Activity.query.filter_by(title="Saturday doubles").one()
        assert activity.date == datetime(2030, 5, 1, 8, 0)
        assert activity.recurrence_end_date == datetime(2030, 6, 1, 10, 0)


def test_offset_start_with_bare_end_date(client, app):
    resp = client.post(
        "/activities/new",
        data=_form(
            date="2030-05-01T10:00:00+02:00",
            is_recurring="on",
            recurrence_type="weekly",
            recurrence_end_date="2030-06-01",
        ),
    )
    assert resp.status_code == 302

    resp = client.post(
        "/activities/new",
        data=_form(
            title="Backwards series",
            date="2030-06-01T23:30:00-05:00",
            is_recurring="on",
            recurrence_type="daily",
            recurrence_end_date="2030-06-01",
        ),
    )
    # 04:30 UTC on 2 June is after the end of 1 June
    assert resp.status_code == 422


def test_when_filter_formats_without_padding(app):
    assert app.jinja_env.filters["when"](datetime(2024, 1, 6, 10, 0)) == "Sat 6 Jan 2024, 10:00"
    assert app.jinja_env.filters["when"](None) == ""
