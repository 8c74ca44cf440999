"""Deterministic point, level and rank arithmetic for citizen contributions."""
from __future__ import annotations

import math
from typing import Dict, Iterable, List, Mapping

ACTION_POINTS: Dict[str, int] = {
    "report_submitted": 25,
    "report_verified": 50,
    "report_resolved": 100,
    "high_accuracy_bonus": 25,
    "first_report_bonus": 50,
    "streak_bonus": 10,
    "ai_scan_used": 5,
    "drone_survey_completed": 200,
    "qr_code_scanned": 15,
    "structural_hazard_found": 75,
    "obscene_content_found": 100,
    "political_ad_found": 150,
}

SEVERITY_MULTIPLIERS: Dict[str, float] = {"critical": 2, "high": 1.5}
NEW_LOCATION_BONUS = 20

# Credited once when a report is created, before any review bonus.
REPORT_SUBMISSION_POINTS: Dict[str, int] = {"low": 25, "medium": 50, "high": 75, "critical": 100}
VERIFICATION_BONUS = 25

FIRST_LEVEL_POINTS = 100
LEVEL_SPAN = 200

RANK_LADDER: List[tuple[int, str]] = [
    (100, "Newcomer"),
    (500, "Bronze Contributor"),
    (1000, "Silver Guardian"),
    (2000, "Gold Protector"),
    (5000, "Platinum Champion"),
]
TOP_RANK = "Diamond Legend"


def calculate_points_for_action(action: str, severity: str | None = None, first_time_location: bool = False) -> int:
    """Points for a named action, scaled by severity with a bonus for a new location."""
    base_points: float = ACTION_POINTS.get(action, 0)
    base_points *= SEVERITY_MULTIPLIERS.get((severity or "").lower(), 1)
    if first_time_location:
        base_points += NEW_LOCATION_BONUS
    return int(math.floor(base_points))


def submission_points(severity: str) -> int:
    try:
        return REPORT_SUBMISSION_POINTS[severity]
    except KeyError:
        raise ValueError(f"Unknown severity: {severity}") from None


def calculate_user_level(points: int) -> int:
    # 100 points for level 1, then one level per 200 points.
    if points < FIRST_LEVEL_POINTS:
        return 0
    return (points - FIRST_LEVEL_POINTS) // LEVEL_SPAN + 1


def get_user_rank(points: int) -> str:
    for upper_bound, label in RANK_LADDER:
        if points < upper_bound:
            return label
    return TOP_RANK


def level_threshold(level: int) -> int:
    """Points at which the given level's successor is reached."""
    return FIRST_LEVEL_POINTS if level == 0 else FIRST_LEVEL_POINTS + level * LEVEL_SPAN


def get_progress_to_next_level(points: int) -> Dict[str, float | int]:
    current_level = calculate_user_level(points)
    points_for_next = level_threshold(current_level)
    if current_level == 0:
        progress = points / FIRST_LEVEL_POINTS * 100
    else:
        span_start = FIRST_LEVEL_POINTS + (current_level - 1) * LEVEL_SPAN
        progress = (points - span_start) / LEVEL_SPAN * 100
    return {
        "current_level": current_level,
        "next_level": current_level + 1,
        "points_needed": max(0, points_for_next - points),
        "progress": min(100.0, max(0.0, float(progress))),
    }


def generate_leaderboard(users: Iterable[Mapping]) -> List[Dict]:
    """Rank accounts by points; each entry gains position, rank and level."""
    ordered = sorted(users, key=lambda u: u.get("total_points") or 0, reverse=True)
    board = []
    for index, user in enumerate(ordered):
        points = user.get("total_points") or 0
        entry = dict(user)
        entry.update(
            {
                "position": index + 1,
                "rank": get_user_rank(points),
                "level": calculate_user_level(points),
            }
        )
        board.append(entry)
    return board
