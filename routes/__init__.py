"""Blueprint registration, public routes, leaderboard and the official dashboard."""
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import text

from extensions import db
from utils.analytics import build_dashboard, leaderboard as build_leaderboard
from utils.decorators import official_required
from .auth import auth_bp
from .reports import reports_bp
from .rewards import rewards_bp
from .scans import scans_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
def index():
    return jsonify({"service": "UrbanWatch", "status": "ok"})


@main_bp.route("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
        database = "ok"
    except Exception:
        current_app.logger.exception("Health check database probe failed")
        database = "unavailable"
    status = 200 if database == "ok" else 503
    return jsonify({"status": "ok" if status == 200 else "degraded", "database": database}), status


@main_bp.route("/leaderboard")
@login_required
def leaderboard():
    default_size = int(current_app.config.get("LEADERBOARD_SIZE", 50))
    try:
        limit = max(1, min(int(request.args.get("limit", default_size)), default_size))
    except (TypeError, ValueError):
        limit = default_size
    entries = build_leaderboard(limit=limit)
    mine = next((e for e in entries if e["user_id"] == current_user.id), None)
    return jsonify({"leaderboard": entries, "me": mine})


@main_bp.route("/dashboard/analytics")
@official_required
def dashboard_analytics():
    return jsonify(build_dashboard(now=datetime.utcnow()))


__all__ = ["main_bp", "auth_bp", "reports_bp", "rewards_bp", "scans_bp"]
