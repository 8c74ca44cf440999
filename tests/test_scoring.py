import pytest

from utils.scoring import (
    calculate_points_for_action,
    calculate_user_level,
    generate_leaderboard,
    get_progress_to_next_level,
    get_user_rank,
    submission_points,
)


@pytest.mark.parametrize(
    "action,severity,first_time,expected",
    [
        ("report_submitted", None, False, 25),
        ("report_resolved", "critical", False, 200),
        ("report_resolved", "high", False, 150),
        ("report_resolved", "medium", True, 120),
        ("report_verified", "high", True, 95),
        ("streak_bonus", "high", False, 15),
        ("political_ad_found", "low", False, 150),
        ("not_an_action", "critical", True, 20),
        ("not_an_action", None, False, 0),
    ],
)
def test_points_for_action(action, severity, first_time, expected):
    assert calculate_points_for_action(action, severity, first_time) == expected


def test_severity_is_case_insensitive():
    assert calculate_points_for_action("report_resolved", "CRITICAL") == 200


def test_submission_table_and_unknown_severity():
    assert [submission_points(s) for s in ("low", "medium", "high", "critical")] == [25, 50, 75, 100]
    with pytest.raises(ValueError):
        submission_points("urgent")


@pytest.mark.parametrize(
    "points,level",
    [(0, 0), (99, 0), (100, 1), (299, 1), (300, 2), (500, 3), (2100, 11)],
)
def test_level(points, level):
    assert calculate_user_level(points) == level


@pytest.mark.parametrize(
    "points,rank",
    [
        (0, "Newcomer"),
        (99, "Newcomer"),
        (100, "Bronze Contributor"),
        (499, "Bronze Contributor"),
        (500, "Silver Guardian"),
        (1000, "Gold Protector"),
        (2000, "Platinum Champion"),
        (4999, "Platinum Champion"),
        (5000, "Diamond Legend"),
    ],
)
def test_rank(points, rank):
    assert get_user_rank(points) == rank


def test_progress_in_first_span():
    progress = get_progress_to_next_level(40)
    assert progress == {"current_level": 0, "next_level": 1, "points_needed": 60, "progress": 40.0}


def test_progress_in_later_span():
    progress = get_progress_to_next_level(350)
    assert progress["current_level"] == 2
    assert progress["next_level"] == 3
    assert progress["points_needed"] == 150
    assert progress["progress"] == pytest.approx(25.0)


def test_progress_at_threshold_starts_new_span():
    progress = get_progress_to_next_level(100)
    assert progress["current_level"] == 1
    assert progress["points_needed"] == 200
    assert progress["progress"] == 0.0


def test_leaderboard_orders_and_annotates_without_mutating():
    users = [
        {"user_id": "a", "total_points": 120},
        {"user_id": "b", "total_points": 5200},
        {"user_id": "c", "total_points": 40},
    ]
    board = generate_leaderboard(users)
    assert [e["user_id"] for e in board] == ["b", "a", "c"]
    assert [e["position"] for e in board] == [1, 2, 3]
    assert board[0]["rank"] == "Diamond Legend"
    assert board[0]["level"] == 26
    assert board[2]["rank"] == "Newcomer"
    assert "position" not in users[0]


def test_leaderboard_empty():
    assert generate_leaderboard([]) == []
