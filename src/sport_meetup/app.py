"""Flask application factory."""

import logging
import os
from pathlib import Path
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from flask import Flask, g, session
from flask_wtf.csrf import CSRFProtect
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from werkzeug.middleware.proxy_fix import ProxyFix

from sport_meetup.models import db
from sport_meetup.recurrence import format_recurrence_type

logger = logging.getLogger(__name__)

csrf = CSRFProtect()

_INSECURE_SECRET_KEY = "dev-key-change-in-production"


def create_app(test_config=None):
    app = Flask(__name__, template_folder="templates", static_folder="static")

    # Database: prefer DATABASE_URL (Railway PostgreSQL), fall back to SQLite
    db_url = os.environ.get("DATABASE_URL")
    if db_url:
        # Railway historically issued postgres:// which SQLAlchemy rejects
        if db_url.startswith("postgres://"):
            db_url = db_url.replace("postgres://", "postgresql://", 1)
        db_url = _normalize_db_url_password(db_url)
        _validate_railway_env(db_url)
    else:
        _validate_railway_env(None)
        db_path = os.environ.get(
            "SPORT_MEETUP_DB_PATH",
            str(Path(__file__).resolve().parent.parent.parent / "data" / "sport_meetup.db"),
        )
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        db_url = f"sqlite:///{db_path}"

    app.config["SQLALCHEMY_DATABASE_URI"] = db_url
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", _INSECURE_SECRET_KEY)
    app.config["GOOGLE_CLIENT_ID"] = os.environ.get("GOOGLE_CLIENT_ID")
    app.config["GOOGLE_CLIENT_SECRET"] = os.environ.get("GOOGLE_CLIENT_SECRET")
    app.config["DEV_AUTO_LOGIN_EMAIL"] = os.environ.get("DEV_AUTO_LOGIN_EMAIL")

    if test_config:
        app.config.update(test_config)

    # Trust Railway's HTTPS proxy so url_for(..., _external=True) produces https://
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

    db.init_app(app)
    csrf.init_app(app)

    with app.app_context():
        try:
            db.create_all()
        except Exception as exc:
            if not _is_duplicate_ddl_error(exc):
                raise
            logger.debug("create_all: some tables already exist (concurrent worker startup), continuing: %s", exc)
        migration_results = _migrate_db()

        # Startup diagnostics
        db_dialect = db.engine.dialect.name
        oauth_ok = bool(app.config.get("GOOGLE_CLIENT_ID") and app.config.get("GOOGLE_CLIENT_SECRET"))
        dev_login = bool(app.config.get("DEV_AUTO_LOGIN_EMAIL"))
        applied = sum(1 for ok in migration_results if ok)
        skipped = sum(1 for ok in migration_results if not ok)
        logger.info(
            "Startup: db=%s oauth=%s dev_login=%s migrations(applied=%d skipped=%d)",
            db_dialect, oauth_ok, dev_login, applied, skipped,
        )

    # Register blueprints
    from sport_meetup.routes.auth import bp as auth_bp, init_oauth
    from sport_meetup.routes.landing import bp as landing_bp
    from sport_meetup.routes.dashboard import bp as dashboard_bp
    from sport_meetup.routes.activities import bp as activities_bp
    from sport_meetup.routes.health import bp as health_bp

    init_oauth(app)
    app.register_blueprint(auth_bp)
    app.register_blueprint(landing_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(activities_bp)
    app.register_blueprint(health_bp)

    app.add_template_filter(format_recurrence_type, "recurrence_label")

    @app.template_filter("when")
    def format_when(value):
        """'Sat 6 Jan 2024, 10:00' for a datetime, empty for None."""
        if value is None:
            return ""
        return f"{value:%a} {value.day} {value:%b %Y, %H:%M}"

    @app.before_request
    def load_user():
        from sport_meetup.models import User
        user_id = session.get("user_id")

        dev_email = app.config.get("DEV_AUTO_LOGIN_EMAIL")
        if dev_email and user_id is None:
            user = User.query.filter_by(email=dev_email).first()
            if not user:
                user = User(email=dev_email, first_name="Dev", last_name="User")
                db.session.add(user)
                db.session.commit()
            session["user_id"] = user.id
            user_id = user.id

        g.user = db.session.get(User, user_id) if user_id else None

    @app.context_processor
    def inject_user():
        return {"current_user": g.get("user")}

    return app


def _normalize_db_url_password(url: str) -> str:
    """Re-encode the password component of *url* so special characters survive.

    Railway sometimes hands out URLs whose password is percent-encoded
    inconsistently.  The password is decoded and re-quoted with no safe
    characters; everything else is left untouched.  Unparseable input is
    returned unchanged.
    """
    try:
        parts = urlsplit(url)
        password = parts.password
    except ValueError:
        return url
    if not parts.scheme or password is None:
        return url

    userinfo, _, hostinfo = parts.netloc.rpartition("@")
    username = userinfo.split(":", 1)[0]
    encoded = quote(unquote(password), safe="")
    netloc = f"{username}:{encoded}@{hostinfo}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def _validate_railway_env(db_url: str | None):
    """Fail fast on Railway when required configuration is missing.

    Outside Railway (no ``RAILWAY_ENVIRONMENT``) this is a no-op.  All
    problems are collected and raised together in a single RuntimeError.
    """
    if not os.environ.get("RAILWAY_ENVIRONMENT"):
        return

    problems = []

    secret = os.environ.get("SECRET_KEY")
    if not secret:
        problems.append("SECRET_KEY is not set.")
    elif secret == _INSECURE_SECRET_KEY:
        problems.append("SECRET_KEY is still the insecure development default.")

    oauth_ok = bool(os.environ.get("GOOGLE_CLIENT_ID") and os.environ.get("GOOGLE_CLIENT_SECRET"))
    if not oauth_ok and not os.environ.get("DEV_AUTO_LOGIN_EMAIL"):
        problems.append(
            "No login method configured: set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET "
            "(or DEV_AUTO_LOGIN_EMAIL for a private deployment)."
        )

    if db_url:
        try:
            parts = urlsplit(db_url)
            host, password = parts.hostname, parts.password
        except ValueError:
            host, password = None, None
        if not host:
            problems.append("DATABASE_URL has no host.")
        if not password:
            problems.append("DATABASE_URL has no password.")

    if problems:
        raise RuntimeError("Invalid Railway configuration: " + " ".join(problems))


def _is_duplicate_ddl_error(exc: Exception) -> bool:
    """Return True if *exc* indicates a DDL object (table/column) already exists.

    Covers both SQLite ('already exists') and PostgreSQL ('already exists',
    'duplicate column', 'duplicate table') error messages.
    """
    msg = str(exc).lower()
    return any(kw in msg for kw in ("already exists", "duplicate column", "duplicate table"))


def _migrate_db() -> list[bool]:
    """Apply incremental schema migrations for existing databases.

    Each statement is executed independently.  Errors caused by a column or
    table already existing are treated as expected and logged at DEBUG level.
    Unexpected errors are logged at WARNING level.

    Returns a list of booleans indicating whether each migration was applied
    (True) or skipped (False, already present).
    """
    migrations = [
        "ALTER TABLE activity ADD COLUMN latitude FLOAT",
        "ALTER TABLE activity ADD COLUMN longitude FLOAT",
        "ALTER TABLE activity ADD COLUMN is_recurring BOOLEAN NOT NULL DEFAULT FALSE",
        "ALTER TABLE activity ADD COLUMN recurrence_type VARCHAR(20)",
        "ALTER TABLE activity ADD COLUMN recurrence_end_date TIMESTAMP",
        "ALTER TABLE activity ADD COLUMN recurrence_day INTEGER",
        "ALTER TABLE participant ADD COLUMN status VARCHAR(20) NOT NULL DEFAULT 'confirmed'",
    ]
    results: list[bool] = []
    for sql in migrations:
        try:
            with db.engine.connect() as conn:
                conn.execute(text(sql))
                conn.commit()
            logger.debug("Migration applied: %.80s", sql)
            results.append(True)
        except Exception as exc:
            if _is_duplicate_ddl_error(exc):
                logger.debug("Migration skipped (already applied): %.80s", sql)
            else:
                logger.warning("Migration failed unexpectedly: sql=%.80s error=%s", sql, exc)
            results.append(False)
    return results


def _is_unique_constraint_error(exc: Exception) -> bool:
    """Return True if *exc* is a unique-constraint violation.

    Detection strategy (most-to-least reliable):
    1. SQLAlchemy IntegrityError + SQLSTATE/PGCODE '23505' (PostgreSQL unique
       violation) via the underlying driver's ``orig`` attribute.
    2. Message-based fallback covering SQLite ('unique constraint failed') and
       any driver that doesn't expose a structured error code.
    """
    if not isinstance(exc, IntegrityError):
        return False
    orig = getattr(exc, "orig", None)
    if orig is not None:
        code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if code is not None:
            return code == "23505"
    msg = str(exc).lower()
    return any(kw in msg for kw in ("unique constraint failed", "unique violation", "duplicate key value"))
