"""Health-check endpoint for Railway and uptime monitors."""

import logging

from flask import Blueprint, jsonify
from sqlalchemy import text

from sport_meetup import __version__
from sport_meetup.models import db

logger = logging.getLogger(__name__)

bp = Blueprint("health", __name__)


@bp.route("/healthz")
def healthz():
    """Report DB connectivity: 200 ``ok`` when reachable, 503 ``degraded`` otherwise."""
    try:
        db.session.execute(text("SELECT 1"))
        db_ok = True
    except Exception as exc:
        logger.warning("Health check could not reach the database: %s", exc)
        db_ok = False

    body = {
        "status": "ok" if db_ok else "degraded",
        "db": "connected" if db_ok else "error",
        "version": __version__,
    }
    return jsonify(body), 200 if db_ok else 503
