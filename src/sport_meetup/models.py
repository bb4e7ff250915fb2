"""Database models for activities, organisers and participants."""

from flask_sqlalchemy import SQLAlchemy

from sport_meetup.recurrence import RECURRENCE_TYPES, utcnow

db = SQLAlchemy()


class User(db.Model):
    """An authenticated user of the application."""

    __tablename__ = "app_user"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    google_sub = db.Column(db.String(255), unique=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    organized = db.relationship("Activity", backref="organizer", lazy="select")

    @property
    def display_name(self):
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or self.email


class Activity(db.Model):
    """A sports activity; recurring ones are a single anchor row."""

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    sport_type = db.Column(db.String(50), nullable=False)
    location = db.Column(db.String(300), nullable=False)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    date = db.Column(db.DateTime, nullable=False)  # anchor, naive UTC
    max_participants = db.Column(db.Integer, nullable=False)
    skill_level = db.Column(db.String(20), nullable=False, default="all")
    is_recurring = db.Column(db.Boolean, nullable=False, default=False)
    recurrence_type = db.Column(db.String(20), nullable=True)  # daily, weekly, biweekly, monthly
    recurrence_end_date = db.Column(db.DateTime, nullable=True)
    recurrence_day = db.Column(db.Integer, nullable=True)  # anchor weekday, 0 = Monday
    organizer_id = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    participants = db.relationship(
        "Participant", backref="activity", cascade="all, delete-orphan", lazy="select"
    )

    SPORT_TYPES = [
        "Running",
        "Cycling",
        "Swimming",
        "Tennis",
        "Basketball",
        "Soccer",
        "Gym",
        "Bodybuilding",
        "Hiking",
        "Yoga",
        "Golf",
        "Volleyball",
        "Badminton",
        "Other",
    ]

    SKILL_LEVELS = [
        ("all", "All Levels"),
        ("beginner", "Beginner"),
        ("intermediate", "Intermediate"),
        ("advanced", "Advanced"),
    ]

    RECURRENCE_TYPES = RECURRENCE_TYPES

    @property
    def confirmed_participants(self):
        return [p for p in self.participants if p.status == "confirmed"]

    @property
    def spots_left(self):
        return max(self.max_participants - len(self.confirmed_participants), 0)

    def has_participant(self, user_id: int) -> bool:
        return any(p.user_id == user_id for p in self.confirmed_participants)


class Participant(db.Model):
    """A user's place on an activity."""

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activity.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="confirmed")  # confirmed, pending, cancelled
    joined_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship("User", backref="participations", lazy="select")

    __table_args__ = (
        db.UniqueConstraint("activity_id", "user_id", name="uq_participant_activity_user"),
    )
