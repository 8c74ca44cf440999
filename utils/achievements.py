"""Read-only achievement catalog and unlock evaluation against account counters."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, MutableMapping, Tuple

ACHIEVEMENT_CATEGORIES: tuple[str, ...] = ("reporting", "accuracy", "community", "special")
ACHIEVEMENT_RARITIES: tuple[str, ...] = ("common", "rare", "epic", "legendary")

# Requirement type -> counter key in the snapshot.
REQUIREMENT_COUNTERS: Dict[str, str] = {
    "reports_submitted": "reports_submitted",
    "monthly_violations": "monthly_violations",
    "accuracy_rate": "accuracy_rate",
    "resolved_reports": "resolved_reports",
    "ai_scans": "ai_scans",
    "unique_locations": "unique_locations",
    "daily_streak": "daily_streak",
    "drone_surveys": "drone_surveys",
}

ACCURACY_MIN_REPORTS = 20


@dataclass(frozen=True)
class Achievement:
    id: str
    title: str
    description: str
    icon: str
    points: int
    category: str
    rarity: str
    requirement_type: str
    target: int

    def to_dict(self, earned_at: datetime | None = None, current: float | None = None) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "icon": self.icon,
            "points": self.points,
            "category": self.category,
            "rarity": self.rarity,
            "requirements": {"type": self.requirement_type, "target": self.target, "current": current},
            "earned": earned_at is not None,
            "earned_date": earned_at.isoformat() if earned_at else None,
        }


ACHIEVEMENTS: Tuple[Achievement, ...] = (
    Achievement("first_report", "First Steps", "Submit your first billboard report", "🎯", 50, "reporting", "common", "reports_submitted", 1),
    Achievement("sharp_eye", "Sharp Eye", "Find 10 violations in a single month", "👁️", 200, "reporting", "rare", "monthly_violations", 10),
    Achievement("accuracy_master", "Accuracy Master", "Maintain 90% accuracy rate with 20+ reports", "🎯", 300, "accuracy", "epic", "accuracy_rate", 90),
    Achievement("community_guardian", "Community Guardian", "Help resolve 25 billboard violations", "🛡️", 500, "community", "epic", "resolved_reports", 25),
    Achievement("tech_pioneer", "Tech Pioneer", "Use AI detection feature 100 times", "🤖", 250, "special", "rare", "ai_scans", 100),
    Achievement("city_explorer", "City Explorer", "Report from 50 different locations", "🗺️", 400, "reporting", "epic", "unique_locations", 50),
    Achievement("streak_master", "Streak Master", "Submit reports for 30 consecutive days", "🔥", 600, "special", "legendary", "daily_streak", 30),
    Achievement("drone_operator", "Drone Operator", "Successfully complete 5 drone surveys", "🚁", 800, "special", "legendary", "drone_surveys", 5),
)

ACHIEVEMENTS_BY_ID: Dict[str, Achievement] = {a.id: a for a in ACHIEVEMENTS}


def get_achievements_by_category(category: str) -> List[Achievement]:
    return [a for a in ACHIEVEMENTS if a.category == category]


def counter_value(counters: dict, requirement_type: str) -> float:
    key = REQUIREMENT_COUNTERS.get(requirement_type)
    if not key:
        return 0
    return counters.get(key) or 0


def is_qualified(achievement: Achievement, counters: dict) -> bool:
    current = counter_value(counters, achievement.requirement_type)
    if current < achievement.target:
        return False
    if achievement.requirement_type == "accuracy_rate":
        return (counters.get("reports_submitted") or 0) >= ACCURACY_MIN_REPORTS
    return True


def check_achievements(
    counters: dict,
    progress: MutableMapping[str, datetime],
    now: datetime | None = None,
) -> List[Achievement]:
    """Record newly qualified achievements in ``progress`` and return them.

    ``progress`` maps achievement id to the time it was earned for a single
    account. Achievements already present are skipped, so evaluating the same
    snapshot twice returns nothing the second time.
    """
    earned_at = now or datetime.utcnow()
    newly_earned: List[Achievement] = []
    for achievement in ACHIEVEMENTS:
        if achievement.id in progress:
            continue
        if is_qualified(achievement, counters):
            progress[achievement.id] = earned_at
            newly_earned.append(achievement)
    return newly_earned
