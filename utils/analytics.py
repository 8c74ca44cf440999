"""Aggregates for the official dashboard charts."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func

from extensions import db
from models import REPORT_SEVERITIES, REPORT_STATUSES, DroneSurvey, Report, User
from utils.scoring import generate_leaderboard

# First matching keyword wins.
VIOLATION_CATEGORIES: List[tuple[str, tuple[str, ...]]] = [
    ("Structural", ("rust", "tilt", "unstable", "crack", "loose", "structural")),
    ("Content", ("inappropriate", "political", "obscene", "content")),
    ("License/QR", ("qr", "license", "licence")),
    ("Size", ("width", "height", "dimension", "oversized", "exceeds")),
    ("Placement", ("placed", "placement", "blocking", "zone", "signal")),
]


def categorize_violation(text: str) -> str:
    lowered = (text or "").lower()
    for category, keywords in VIOLATION_CATEGORIES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "Other"


def report_stats() -> Dict[str, int]:
    counts = dict(db.session.query(Report.status, func.count(Report.id)).group_by(Report.status).all())
    stats = {status: int(counts.get(status, 0)) for status in REPORT_STATUSES}
    stats["total"] = sum(stats.values())
    return stats


def severity_distribution() -> Dict[str, int]:
    counts = dict(db.session.query(Report.severity, func.count(Report.id)).group_by(Report.severity).all())
    return {severity: int(counts.get(severity, 0)) for severity in REPORT_SEVERITIES}


def violation_distribution() -> List[Dict]:
    totals: Dict[str, int] = {}
    for (violations,) in db.session.query(Report.violations).all():
        for violation in violations or []:
            category = categorize_violation(violation)
            totals[category] = totals.get(category, 0) + 1
    return [{"name": name, "value": value} for name, value in sorted(totals.items(), key=lambda kv: kv[1], reverse=True)]


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def monthly_reports(months: int = 6, now: Optional[datetime] = None) -> List[Dict]:
    now = now or datetime.utcnow()
    first_year, first_month = _shift_month(now.year, now.month, -(months - 1))
    window_start = datetime(first_year, first_month, 1)
    buckets: Dict[tuple[int, int], Dict] = {}
    for offset in range(months):
        year, month = _shift_month(first_year, first_month, offset)
        buckets[(year, month)] = {"month": datetime(year, month, 1).strftime("%b %Y"), "reports": 0, "resolved": 0}

    for created_at, status in db.session.query(Report.created_at, Report.status).filter(Report.created_at >= window_start):
        bucket = buckets.get((created_at.year, created_at.month))
        if not bucket:
            continue
        bucket["reports"] += 1
        if status == "resolved":
            bucket["resolved"] += 1
    return list(buckets.values())


def leaderboard(limit: int = 50) -> List[Dict]:
    users = User.query.filter(User.is_active.is_(True)).order_by(User.points.desc()).limit(limit).all()
    return generate_leaderboard(
        [{"user_id": u.id, "full_name": u.full_name, "city": u.city, "total_points": u.points or 0} for u in users]
    )


def survey_totals() -> Dict[str, int]:
    completed = DroneSurvey.query.filter_by(status="completed").all()
    violations_found = sum(len((s.results or {}).get("violations") or []) for s in completed)
    return {
        "completed": len(completed),
        "in_progress": DroneSurvey.query.filter_by(status="in_progress").count(),
        "violations_found": violations_found,
    }


def build_dashboard(now: Optional[datetime] = None, top_n: int = 10) -> Dict:
    return {
        "stats": report_stats(),
        "severity": severity_distribution(),
        "violation_types": violation_distribution(),
        "monthly_reports": monthly_reports(now=now),
        "top_contributors": leaderboard(limit=top_n),
        "drone_surveys": survey_totals(),
        "generated_at": (now or datetime.utcnow()).isoformat(),
    }
