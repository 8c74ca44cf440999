"""Report creation and review transitions, with the point credits each one earns."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import FileStorage

from extensions import db
from models import REPORT_SEVERITIES, REPORT_STATUSES, REPORT_TRANSITIONS, Report, ReportStatusHistory, User
from utils.achievements import Achievement
from utils.image_utils import evidence_flags, persist_image, remove_stored_file
from utils.points import credit_points, evaluate_achievements, location_key
from utils.scoring import VERIFICATION_BONUS, calculate_points_for_action, submission_points

SEVERITY_WEIGHTS: Dict[str, float] = {"low": 0.25, "medium": 0.5, "high": 0.75, "critical": 1.0}
MAX_VIOLATIONS = 20


class ReportError(Exception):
    """Raised when a report cannot be created or moved to the requested status."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def parse_coordinate(value: Any, name: str, bound: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ReportError(f"{name} must be a number") from None
    if not -bound <= number <= bound:
        raise ReportError(f"{name} is out of range")
    return number


def normalize_violations(raw: Any, ai_analysis: Optional[Dict] = None) -> List[str]:
    if isinstance(raw, str):
        raw = [raw]
    items = [str(v).strip()[:255] for v in (raw or []) if str(v).strip()]
    if not items and ai_analysis:
        items = [str(v).strip()[:255] for v in ai_analysis.get("violations") or [] if str(v).strip()]
    # Preserve first-seen order while dropping duplicates.
    return list(dict.fromkeys(items))[:MAX_VIOLATIONS]


def _validate_image_url(image_url: str) -> str:
    url = (image_url or "").strip()
    if not url.lower().startswith(("http://", "https://")) or len(url) > 500:
        raise ReportError("image_url must be an http(s) URL")
    return url


def record_status(report: Report, new_status: str, actor: Optional[User], remarks: Optional[str] = None) -> ReportStatusHistory:
    history = ReportStatusHistory(
        report=report,
        previous_status=report.status if report.status != new_status else None,
        new_status=new_status,
        remarks=remarks,
        changed_by=actor.id if actor else None,
    )
    report.status = new_status
    db.session.add(history)
    return history


def create_report(
    user: User,
    *,
    location: str,
    latitude: Any,
    longitude: Any,
    severity: str,
    violations: Any = None,
    image_url: Optional[str] = None,
    upload: Optional[FileStorage] = None,
    ai_analysis: Optional[Dict] = None,
    now: Optional[datetime] = None,
) -> tuple[Report, List[Achievement]]:
    """Stage a new pending report, its submission credits and any unlocked achievements.

    Either ``upload`` or ``image_url`` must be given. The caller commits.
    """
    severity = (severity or "").strip().lower()
    if severity not in REPORT_SEVERITIES:
        raise ReportError(f"severity must be one of: {', '.join(REPORT_SEVERITIES)}")
    location = (location or "").strip()[:255]
    if not location:
        raise ReportError("location is required")
    lat = parse_coordinate(latitude, "latitude", 90)
    lng = parse_coordinate(longitude, "longitude", 180)
    if ai_analysis is not None and not isinstance(ai_analysis, dict):
        raise ReportError("ai_analysis must be an object")

    image_hash = None
    exif_metadata = None
    flags: List[str] = []
    if upload is not None and upload.filename:
        try:
            stored = persist_image(
                upload,
                current_app.config["REPORT_UPLOAD_FOLDER"],
                max_bytes=current_app.config.get("MAX_IMAGE_UPLOAD_BYTES"),
            )
        except ValueError as exc:
            raise ReportError(str(exc)) from exc
        stored_image = stored["path"]
        image_hash = stored["image_hash"]
        exif_metadata = stored["exif_metadata"]
        duplicate = db.session.query(Report.id).filter(Report.image_hash == image_hash).first() is not None
        flags = evidence_flags(exif_metadata, duplicate, now)
    elif image_url:
        stored_image = _validate_image_url(image_url)
    else:
        raise ReportError("An image upload or image_url is required")

    report = Report(
        location=location,
        location_key=location_key(location),
        latitude=lat,
        longitude=lng,
        image_url=stored_image,
        image_hash=image_hash,
        exif_metadata=exif_metadata,
        evidence_flags=flags,
        violations=normalize_violations(violations, ai_analysis),
        severity=severity,
        status="pending",
        ai_analysis=ai_analysis,
    )
    try:
        unlocked = _stage_report(user, report, now)
    except SQLAlchemyError:
        if image_hash:
            remove_stored_file(stored_image)
        raise

    current_app.logger.info(
        "Report created",
        extra={
            "report_id": report.id,
            "user_id": user.id,
            "severity": severity,
            "points": report.points_earned,
            "first_time_location": report.first_time_location,
            "evidence_flags": len(flags),
        },
    )
    return report, unlocked


def _stage_report(user: User, report: Report, now: Optional[datetime]) -> List[Achievement]:
    has_reports = db.session.query(Report.id).filter(Report.user_id == user.id).first() is not None
    seen_location = (
        has_reports
        and db.session.query(Report.id)
        .filter(Report.user_id == user.id, Report.location_key == report.location_key)
        .first()
        is not None
    )

    report.user_id = user.id
    report.points_earned = submission_points(report.severity)
    report.first_time_location = not seen_location
    if now is not None:
        report.created_at = now
    db.session.add(report)
    db.session.flush()
    record_status(report, "pending", user, remarks="Report submitted")

    credit_points(user, report.points_earned, "report_submitted", report)
    if not has_reports:
        credit_points(user, calculate_points_for_action("first_report_bonus"), "first_report_bonus", report)
    return evaluate_achievements(user, now)


def transition_report(
    report: Report,
    new_status: str,
    actor: User,
    remarks: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Move a report along its review path and credit the owner; the caller commits."""
    new_status = (new_status or "").strip().lower()
    if new_status not in REPORT_STATUSES:
        raise ReportError(f"status must be one of: {', '.join(REPORT_STATUSES)}")
    allowed = REPORT_TRANSITIONS.get(report.status, ())
    if new_status not in allowed:
        raise ReportError(f"Cannot move report from {report.status} to {new_status}", status_code=409)

    previous = report.status
    record_status(report, new_status, actor, remarks=(remarks or "").strip()[:500] or None)

    owner = report.user
    awarded = 0
    if new_status == "verified":
        awarded = VERIFICATION_BONUS
        credit_points(owner, awarded, "report_verified", report)
    elif new_status == "resolved":
        awarded = calculate_points_for_action("report_resolved", report.severity, report.first_time_location)
        credit_points(owner, awarded, "report_resolved", report)

    db.session.flush()
    unlocked = evaluate_achievements(owner, now)
    current_app.logger.info(
        "Report status changed",
        extra={
            "report_id": report.id,
            "from_status": previous,
            "to_status": new_status,
            "actor_id": actor.id,
            "points_awarded": awarded,
        },
    )
    return {"report": report, "points_awarded": awarded, "achievements": unlocked}


def map_points(reports: Iterable[Report]) -> List[Dict[str, Any]]:
    return [
        {
            "id": r.id,
            "lat": r.latitude,
            "lng": r.longitude,
            "severity": r.severity,
            "status": r.status,
            "weight": SEVERITY_WEIGHTS.get(r.severity, 0.5),
            "violations": len(r.violations or []),
        }
        for r in reports
    ]
