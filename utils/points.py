"""Points ledger writes and achievement progress for persisted accounts."""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.orm.attributes import set_committed_value

from extensions import db
from models import AchievementProgress, DroneSurvey, ImageScan, PointTransaction, Report, User
from utils.achievements import Achievement, check_achievements
from utils.scoring import calculate_points_for_action


def _apply(user: User, delta: int, reason: str, report: Optional[Report] = None) -> PointTransaction:
    # The balance moves in SQL so overlapping requests cannot overwrite each other.
    balance = db.session.execute(
        update(User)
        .where(User.id == user.id, User.points + delta >= 0)
        .values(points=User.points + delta)
        .returning(User.points),
        execution_options={"synchronize_session": False},
    ).scalar_one_or_none()
    if balance is None:
        raise ValueError("Point balance cannot go negative")
    set_committed_value(user, "points", balance)
    entry = PointTransaction(
        user_id=user.id,
        delta=delta,
        balance_after=balance,
        reason=reason,
        report_id=report.id if report is not None else None,
    )
    db.session.add(entry)
    return entry


def credit_points(user: User, points: int, reason: str, report: Optional[Report] = None) -> Optional[PointTransaction]:
    """Add points and the matching ledger row; the caller commits."""
    if points < 0:
        raise ValueError("Credits must be non-negative")
    if points == 0:
        return None
    entry = _apply(user, points, reason, report)
    current_app.logger.info(
        "Points credited",
        extra={"user_id": user.id, "delta": points, "reason": reason, "balance": user.points},
    )
    return entry


def debit_points(user: User, points: int, reason: str) -> PointTransaction:
    """Subtract points for a redemption; the caller has already checked the balance."""
    if points <= 0:
        raise ValueError("Debits must be positive")
    entry = _apply(user, -points, reason)
    current_app.logger.info(
        "Points debited",
        extra={"user_id": user.id, "delta": -points, "reason": reason, "balance": user.points},
    )
    return entry


def location_key(location: str) -> str:
    return " ".join((location or "").lower().split())


def _daily_streak(report_days: List[date], today: date) -> int:
    days = sorted(set(report_days), reverse=True)
    if not days or days[0] < today - timedelta(days=1):
        return 0
    streak = 1
    for previous, current in zip(days, days[1:]):
        if previous - current != timedelta(days=1):
            break
        streak += 1
    return streak


def account_counters(user: User, now: Optional[datetime] = None) -> Dict[str, float]:
    """Snapshot of the counters achievement requirements are checked against."""
    now = now or datetime.utcnow()
    reports = Report.query.filter_by(user_id=user.id).all()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    status_counts: Dict[str, int] = {}
    for report in reports:
        status_counts[report.status] = status_counts.get(report.status, 0) + 1
    accepted = status_counts.get("verified", 0) + status_counts.get("resolved", 0)
    reviewed = accepted + status_counts.get("rejected", 0)

    completed_surveys = (
        db.session.query(func.count(DroneSurvey.id))
        .filter(DroneSurvey.operator_id == user.id, DroneSurvey.status == "completed")
        .scalar()
    )
    return {
        "reports_submitted": len(reports),
        "monthly_violations": sum(len(r.violations or []) for r in reports if r.created_at >= month_start),
        "accuracy_rate": round(accepted / reviewed * 100, 2) if reviewed else 0,
        "resolved_reports": status_counts.get("resolved", 0),
        "ai_scans": ImageScan.query.filter_by(user_id=user.id).count(),
        "unique_locations": len({r.location_key for r in reports}),
        "daily_streak": _daily_streak([r.created_at.date() for r in reports], now.date()),
        "drone_surveys": completed_surveys or 0,
    }


def earned_progress(user: User) -> Dict[str, datetime]:
    return {row.achievement_id: row.earned_at for row in AchievementProgress.query.filter_by(user_id=user.id)}


def evaluate_achievements(user: User, now: Optional[datetime] = None) -> List[Achievement]:
    """Unlock qualifying achievements for one account and credit their points."""
    now = now or datetime.utcnow()
    progress = earned_progress(user)
    newly_earned = check_achievements(account_counters(user, now), progress, now=now)
    for achievement in newly_earned:
        db.session.add(AchievementProgress(user_id=user.id, achievement_id=achievement.id, earned_at=progress[achievement.id]))
        credit_points(user, achievement.points, f"achievement:{achievement.id}")
    if newly_earned:
        current_app.logger.info(
            "Achievements unlocked",
            extra={"user_id": user.id, "achievements": [a.id for a in newly_earned]},
        )
    return newly_earned


# Analysis field -> bonus action credited on top of ai_scan_used.
SCAN_FINDING_ACTIONS: List[tuple[str, str]] = [
    ("structural_hazards", "structural_hazard_found"),
    ("obscene_content", "obscene_content_found"),
    ("political_content", "political_ad_found"),
    ("qr_code_detected", "qr_code_scanned"),
]


def scan_awards(analysis: Dict) -> List[tuple[str, int]]:
    awards = [("ai_scan_used", calculate_points_for_action("ai_scan_used"))]
    for field, action in SCAN_FINDING_ACTIONS:
        if analysis.get(field):
            awards.append((action, calculate_points_for_action(action)))
    return awards
