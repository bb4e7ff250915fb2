"""Shared pytest fixtures for the Sport Meetup test suite."""

from datetime import timedelta

import pytest

from sport_meetup.app import create_app
from sport_meetup.models import Activity, Participant, User, db
from sport_meetup.recurrence import utcnow

DEV_EMAIL = "test@example.com"


@pytest.fixture()
def app():
    """Create an application configured for testing with an in-memory SQLite DB."""
    application = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SECRET_KEY": "test-secret-key",
            "WTF_CSRF_ENABLED": False,
            "DEV_AUTO_LOGIN_EMAIL": DEV_EMAIL,
        }
    )
    yield application


@pytest.fixture()
def client(app):
    """A test client for the application, signed in as the dev auto-login user."""
    return app.test_client()


def _get_or_create_user(email):
    user = User.query.filter_by(email=email).first()
    if not user:
        user = User(email=email, first_name=email.split("@")[0].title())
        db.session.add(user)
        db.session.commit()
    return user


@pytest.fixture()
def make_activity(app):
    """Factory inserting an activity directly; returns its id.

    The organizer (``organizer_email``, default the dev user) is added as the
    first confirmed participant, as the create form does.
    """

    def _make(organizer_email=DEV_EMAIL, **fields):
        values = dict(
            title="Thursday 5k",
            description="Steady group run",
            sport_type="Running",
            location="Riverside Park",
            date=utcnow() + timedelta(days=3),
            max_participants=10,
            skill_level="all",
        )
        values.update(fields)
        with app.app_context():
            organizer = _get_or_create_user(organizer_email)
            activity = Activity(organizer_id=organizer.id, **values)
            activity.participants.append(Participant(user_id=organizer.id))
            db.session.add(activity)
            db.session.commit()
            return activity.id

    return _make


@pytest.fixture()
def login_as(app, client):
    """Switch the test client's session to another user, creating them if needed."""

    def _login(email):
        with app.app_context():
            user_id = _get_or_create_user(email).id
        with client.session_transaction() as sess:
            sess["user_id"] = user_id
        return user_id

    return _login
