"""AI billboard scans and drone survey missions."""
from datetime import datetime

from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import SURVEY_STATUSES, DroneSurvey, ImageScan
from utils.ai_vision import AIVisionError, get_image_analyzer
from utils.decorators import log_action, official_required
from utils.drone_survey import SurveyError, get_survey_runner, validate_area
from utils.image_utils import get_mime_type, validate_image_file
from utils.points import credit_points, evaluate_achievements, scan_awards
from utils.reports import ReportError, parse_coordinate
from utils.scoring import calculate_points_for_action
from utils.security import track_attempt

scans_bp = Blueprint("scans", __name__)

# Failure code -> HTTP status for analyzer errors.
ANALYSIS_ERROR_STATUS = {
    "rate-limited": 429,
    "network_error": 503,
}


def _survey_or_404(mission_id: str) -> DroneSurvey:
    survey = DroneSurvey.query.filter_by(mission_id=mission_id).first()
    if not survey:
        abort(404)
    return survey


@scans_bp.route("/scans/analyze", methods=["POST"])
@login_required
def analyze():
    limit = int(current_app.config.get("SCAN_HOURLY_LIMIT", 60))
    if not track_attempt(f"scan:{current_user.id}", limit=limit):
        return jsonify({"success": False, "error": {"code": "rate-limited", "message": "Scan limit reached.", "retryAfter": 3600}}), 429

    try:
        image_bytes, ext = validate_image_file(
            request.files.get("image"),
            max_bytes=current_app.config.get("MAX_IMAGE_UPLOAD_BYTES"),
        )
        location = {
            "lat": parse_coordinate(request.form.get("latitude"), "latitude", 90),
            "lng": parse_coordinate(request.form.get("longitude"), "longitude", 180),
        }
    except ReportError as exc:
        return jsonify({"success": False, "message": exc.message}), 400
    except ValueError as exc:
        return jsonify({"success": False, "message": str(exc)}), 400

    analyzer = get_image_analyzer(current_app.config)
    try:
        analysis = analyzer.analyze(image_bytes, get_mime_type(ext), location)
    except AIVisionError as exc:
        current_app.logger.warning(
            "Image analysis failed",
            extra={"user_id": current_user.id, "analyzer": analyzer.name, "code": exc.code},
        )
        response = jsonify({"success": False, "error": exc.to_dict()})
        status = ANALYSIS_ERROR_STATUS.get(exc.code, 502)
        if exc.retry_after:
            response.headers["Retry-After"] = str(exc.retry_after)
        return response, status

    awards = scan_awards(analysis)
    total = sum(points for _, points in awards)
    try:
        scan = ImageScan(
            user_id=current_user.id,
            analyzer=analyzer.name,
            latitude=location["lat"],
            longitude=location["lng"],
            result=analysis,
            points_awarded=total,
        )
        db.session.add(scan)
        db.session.flush()
        for action, points in awards:
            credit_points(current_user, points, action)
        unlocked = evaluate_achievements(current_user)
        db.session.commit()
    except SQLAlchemyError:
        current_app.logger.exception("Database error while recording scan")
        db.session.rollback()
        return jsonify({"success": False, "message": "Unable to record scan. Please retry."}), 500

    return jsonify(
        {
            "success": True,
            "scan_id": scan.id,
            "analysis": analysis,
            "awards": [{"action": action, "points": points} for action, points in awards],
            "points_awarded": total,
            "points": current_user.points,
            "new_achievements": [a.id for a in unlocked],
        }
    )


@scans_bp.route("/drone-surveys", methods=["POST"])
@official_required
def start_survey():
    payload = request.get_json(silent=True) or {}
    area = {
        "center": payload.get("center"),
        "radius": payload.get("radius", current_app.config.get("DRONE_DEFAULT_RADIUS_KM", 5)),
        "altitude": payload.get("altitude", current_app.config.get("DRONE_DEFAULT_ALTITUDE_M", 100)),
    }
    try:
        area = validate_area(area, float(current_app.config.get("DRONE_MAX_RADIUS_KM", 25)))
    except SurveyError as exc:
        return jsonify({"success": False, "message": str(exc)}), 400

    runner = get_survey_runner(current_app.config)
    mission_id = runner.initiate(area)
    survey = DroneSurvey(
        mission_id=mission_id,
        operator_id=current_user.id,
        center_lat=area["center"]["lat"],
        center_lng=area["center"]["lng"],
        radius_km=area["radius"],
        altitude_m=area["altitude"],
        status="in_progress",
    )
    try:
        db.session.add(survey)
        log_action("DRONE_SURVEY_STARTED", current_user, context=f"survey:{mission_id}")
        db.session.commit()
    except SQLAlchemyError:
        current_app.logger.exception("Database error while starting survey")
        db.session.rollback()
        return jsonify({"success": False, "message": "Unable to start survey."}), 500

    current_app.logger.info("Drone survey started", extra={"mission_id": mission_id, "operator_id": current_user.id})
    return jsonify({"success": True, "survey": survey.to_dict()}), 201


@scans_bp.route("/drone-surveys", methods=["GET"])
@official_required
def list_surveys():
    query = DroneSurvey.query
    status_filter = request.args.get("status")
    if status_filter in SURVEY_STATUSES:
        query = query.filter_by(status=status_filter)
    surveys = query.order_by(DroneSurvey.started_at.desc()).limit(100).all()
    return jsonify({"surveys": [s.to_dict() for s in surveys]})


@scans_bp.route("/drone-surveys/<string:mission_id>", methods=["GET"])
@official_required
def view_survey(mission_id):
    return jsonify(_survey_or_404(mission_id).to_dict())


@scans_bp.route("/drone-surveys/<string:mission_id>/complete", methods=["POST"])
@official_required
def complete_survey(mission_id):
    survey = _survey_or_404(mission_id)
    if survey.status != "in_progress":
        return jsonify({"success": False, "message": f"Survey is already {survey.status}."}), 409

    area = {
        "center": {"lat": survey.center_lat, "lng": survey.center_lng},
        "radius": survey.radius_km,
        "altitude": survey.altitude_m,
    }
    runner = get_survey_runner(current_app.config)
    try:
        survey.results = runner.results(survey.mission_id, area)
        survey.status = "completed"
        survey.completed_at = datetime.utcnow()
        operator = survey.operator
        awarded = calculate_points_for_action("drone_survey_completed")
        credit_points(operator, awarded, "drone_survey_completed")
        db.session.flush()
        unlocked = evaluate_achievements(operator)
        log_action("DRONE_SURVEY_COMPLETED", current_user, context=f"survey:{mission_id}")
        db.session.commit()
    except SQLAlchemyError:
        current_app.logger.exception("Database error while completing survey")
        db.session.rollback()
        return jsonify({"success": False, "message": "Unable to complete survey."}), 500

    current_app.logger.info(
        "Drone survey completed",
        extra={"mission_id": mission_id, "violations": len(survey.results["violations"])},
    )
    return jsonify(
        {
            "success": True,
            "survey": survey.to_dict(),
            "points_awarded": awarded,
            "new_achievements": [a.id for a in unlocked],
        }
    )


@scans_bp.route("/drone-surveys/<string:mission_id>/abort", methods=["POST"])
@official_required
def abort_survey(mission_id):
    survey = _survey_or_404(mission_id)
    if survey.status != "in_progress":
        return jsonify({"success": False, "message": f"Survey is already {survey.status}."}), 409
    survey.status = "aborted"
    survey.completed_at = datetime.utcnow()
    log_action("DRONE_SURVEY_ABORTED", current_user, context=f"survey:{mission_id}")
    db.session.commit()
    return jsonify({"success": True, "survey": survey.to_dict()})
