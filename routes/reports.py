"""Billboard report submission, listing and official review blueprint."""
import json
import os

from flask import Blueprint, abort, current_app, jsonify, request, send_file
from flask_login import current_user, login_required
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import REPORT_SEVERITIES, REPORT_STATUSES, Report
from utils.decorators import log_action, official_required
from utils.image_utils import get_mime_type, remove_stored_file
from utils.reports import ReportError, create_report, map_points, transition_report
from utils.security import sanitize_input

reports_bp = Blueprint("reports", __name__, url_prefix="/reports")


def _report_or_404(report_id: str) -> Report:
    report = db.session.get(Report, str(report_id))
    if not report:
        abort(404)
    if report.user_id != current_user.id and not current_user.is_official:
        abort(403)
    return report


def _scoped_query():
    """Officials see every report with ?scope=all; everyone else sees their own."""
    if current_user.is_official and request.args.get("scope") == "all":
        return Report.query
    return Report.query.filter_by(user_id=current_user.id)


def _ai_analysis_from(payload):
    raw = payload.get("ai_analysis")
    if raw is None or isinstance(raw, dict):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        raise ReportError("ai_analysis must be valid JSON") from None


def _page_args() -> tuple[int, int]:
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (TypeError, ValueError):
        page = 1
    default_page_size = int(current_app.config.get("REPORTS_PER_PAGE", 20))
    try:
        per_page = int(request.args.get("per_page", default_page_size))
    except (TypeError, ValueError):
        per_page = default_page_size
    return page, max(1, min(per_page, 100))


def _error(exc: ReportError):
    return jsonify({"success": False, "message": exc.message}), exc.status_code


@reports_bp.route("", methods=["POST"])
@login_required
def submit_report():
    json_payload = request.get_json(silent=True)
    payload = json_payload if isinstance(json_payload, dict) else request.form
    if isinstance(json_payload, dict):
        violations = json_payload.get("violations")
    else:
        violations = request.form.getlist("violations")

    report = None
    try:
        report, unlocked = create_report(
            current_user,
            location=payload.get("location"),
            latitude=payload.get("latitude"),
            longitude=payload.get("longitude"),
            severity=payload.get("severity"),
            violations=violations,
            image_url=payload.get("image_url"),
            upload=request.files.get("image"),
            ai_analysis=_ai_analysis_from(payload),
        )
        log_action("REPORT_CREATED", current_user, context=f"report:{report.id}")
        db.session.commit()
    except ReportError as exc:
        db.session.rollback()
        current_app.logger.warning("Report rejected", extra={"user_id": current_user.id, "error": exc.message})
        return _error(exc)
    except SQLAlchemyError:
        current_app.logger.exception("Database error while saving report")
        upload_path = report.image_url if report is not None and report.image_hash else None
        db.session.rollback()
        remove_stored_file(upload_path)
        return jsonify({"success": False, "message": "Unable to save report. Please retry."}), 500

    return (
        jsonify(
            {
                "success": True,
                "report": report.to_dict(),
                "points": current_user.points,
                "new_achievements": [a.to_dict(earned_at=report.created_at) for a in unlocked],
            }
        ),
        201,
    )


@reports_bp.route("", methods=["GET"])
@login_required
def list_reports():
    filters = sanitize_input(request.args)
    status_filter = filters.get("status")
    severity_filter = filters.get("severity")
    page, per_page = _page_args()

    query = _scoped_query()
    if status_filter and status_filter in REPORT_STATUSES:
        query = query.filter(Report.status == status_filter)
    if severity_filter and severity_filter in REPORT_SEVERITIES:
        query = query.filter(Report.severity == severity_filter)

    pagination = query.order_by(Report.created_at.desc()).paginate(page=page, per_page=per_page, error_out=False)
    include_owner = current_user.is_official
    return jsonify(
        {
            "reports": [r.to_dict(include_owner=include_owner) for r in pagination.items],
            "page": pagination.page,
            "pages": pagination.pages,
            "total": pagination.total,
            "filters": {"status": status_filter or "all", "severity": severity_filter or "all"},
        }
    )


@reports_bp.route("/stats", methods=["GET"])
@login_required
def report_stats():
    query = _scoped_query().with_entities(Report.status, func.count(Report.id)).group_by(Report.status)
    counts = dict(query.all())
    stats = {status: int(counts.get(status, 0)) for status in REPORT_STATUSES}
    stats["total"] = sum(stats.values())
    return jsonify(stats)


@reports_bp.route("/map", methods=["GET"])
@login_required
def report_map():
    query = Report.query
    status_filter = request.args.get("status")
    if status_filter and status_filter in REPORT_STATUSES:
        query = query.filter(Report.status == status_filter)
    reports = query.order_by(Report.created_at.desc()).limit(1000).all()
    return jsonify({"points": map_points(reports)})


@reports_bp.route("/<string:report_id>", methods=["GET"])
@login_required
def view_report(report_id):
    report = _report_or_404(report_id)
    payload = report.to_dict(include_owner=current_user.is_official)
    payload["history"] = [h.to_dict() for h in report.status_history]
    return jsonify(payload)


@reports_bp.route("/<string:report_id>/image", methods=["GET"])
@login_required
def view_report_image(report_id):
    report = _report_or_404(report_id)
    if not report.image_hash:
        return jsonify({"image_url": report.image_url})
    upload_root = os.path.abspath(current_app.config["REPORT_UPLOAD_FOLDER"])
    path = os.path.abspath(report.image_url)
    if not path.startswith(upload_root + os.sep):
        abort(403)
    if not os.path.isfile(path):
        abort(404)
    ext = os.path.splitext(path)[1].lstrip(".")
    return send_file(path, mimetype=get_mime_type(ext), download_name=os.path.basename(path))


@reports_bp.route("/<string:report_id>/status", methods=["POST"])
@official_required
def update_status(report_id):
    report = db.session.get(Report, str(report_id))
    if not report:
        abort(404)
    payload = request.get_json(silent=True) or request.form

    try:
        outcome = transition_report(report, payload.get("status"), current_user, remarks=payload.get("remarks"))
        log_action("REPORT_STATUS_CHANGE", current_user, context=f"report:{report.id}:{report.status}")
        db.session.commit()
    except ReportError as exc:
        db.session.rollback()
        return _error(exc)
    except SQLAlchemyError:
        current_app.logger.exception("Database error while updating report status")
        db.session.rollback()
        return jsonify({"success": False, "message": "Unable to update report. Please retry."}), 500

    return jsonify(
        {
            "success": True,
            "report": report.to_dict(include_owner=True),
            "points_awarded": outcome["points_awarded"],
            "owner_points": report.user.points,
            "new_achievements": [a.id for a in outcome["achievements"]],
        }
    )
