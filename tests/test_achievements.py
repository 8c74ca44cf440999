from datetime import datetime

from utils.achievements import ACHIEVEMENTS, check_achievements, get_achievements_by_category

NOW = datetime(2026, 3, 14, 9, 30)


def _counters(**overrides):
    counters = {
        "reports_submitted": 0,
        "monthly_violations": 0,
        "accuracy_rate": 0,
        "resolved_reports": 0,
        "ai_scans": 0,
        "unique_locations": 0,
        "daily_streak": 0,
        "drone_surveys": 0,
    }
    counters.update(overrides)
    return counters


def test_first_report_unlocks_once():
    progress = {}
    earned = check_achievements(_counters(reports_submitted=1, unique_locations=1), progress, now=NOW)
    assert [a.id for a in earned] == ["first_report"]
    assert progress == {"first_report": NOW}

    assert check_achievements(_counters(reports_submitted=2), progress, now=NOW) == []
    assert progress["first_report"] == NOW


def test_accuracy_requires_minimum_reports():
    progress = {}
    earned = check_achievements(_counters(reports_submitted=19, accuracy_rate=100), progress, now=NOW)
    assert "accuracy_master" not in {a.id for a in earned}

    earned = check_achievements(_counters(reports_submitted=20, accuracy_rate=90), progress, now=NOW)
    assert "accuracy_master" in {a.id for a in earned}


def test_thresholds_are_inclusive():
    progress = {}
    earned = check_achievements(
        _counters(monthly_violations=10, ai_scans=100, daily_streak=30, drone_surveys=5),
        progress,
        now=NOW,
    )
    assert {a.id for a in earned} == {"sharp_eye", "tech_pioneer", "streak_master", "drone_operator"}


def test_earned_state_is_not_revoked():
    progress = {"community_guardian": NOW}
    assert check_achievements(_counters(), progress, now=NOW) == []
    assert "community_guardian" in progress


def test_category_filter():
    special = get_achievements_by_category("special")
    assert {a.id for a in special} == {"tech_pioneer", "streak_master", "drone_operator"}
    assert get_achievements_by_category("unknown") == []
    assert sum(len(get_achievements_by_category(c)) for c in ("reporting", "accuracy", "community", "special")) == len(ACHIEVEMENTS)


def test_to_dict_reports_progress():
    achievement = ACHIEVEMENTS[0]
    payload = achievement.to_dict(earned_at=NOW, current=3)
    assert payload["earned"] is True
    assert payload["earned_date"] == NOW.isoformat()
    assert payload["requirements"] == {"type": "reports_submitted", "target": 1, "current": 3}
    assert achievement.to_dict()["earned"] is False
