import os
from urllib.parse import urlparse

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import AchievementProgress, PointTransaction, RewardRedemption, User
from utils.encryption import EncryptionService

from conftest import login, make_user


def _rich_client(app, points=1200):
    make_user(app, "rich@example.com", points=points, full_name="Meera Shah")
    client = app.test_client()
    login(client, "rich@example.com")
    return client


def test_summary_for_new_account(citizen_client):
    summary = citizen_client.get("/rewards/summary").get_json()
    assert summary["points"] == 0
    assert summary["rank"] == "Newcomer"
    assert summary["progress"] == {"current_level": 0, "next_level": 1, "points_needed": 100, "progress": 0.0}
    assert summary["achievements_earned"] == 0
    assert summary["achievements_total"] == 8


def test_catalog_flags_affordability(app):
    client = _rich_client(app, points=300)
    rewards = {r["id"]: r for r in client.get("/rewards").get_json()["rewards"]}
    assert rewards["eco_warrior_badge"]["affordable"] is True
    assert rewards["movie_ticket"]["affordable"] is False
    assert rewards["coffee_discount"]["expired"] is False

    available = client.get("/rewards/available").get_json()["rewards"]
    assert {r["id"] for r in available} == {"coffee_discount", "eco_warrior_badge"}


def test_redeem_debits_points_and_records_ledger(app):
    client = _rich_client(app, points=300)
    response = client.post("/rewards/coffee_discount/redeem")
    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert body["new_points"] == 200
    assert body["certificate_share_url"] is None

    with app.app_context():
        user = User.query.filter_by(email="rich@example.com").one()
        assert user.points == 200
        entry = PointTransaction.query.filter_by(user_id=user.id).one()
        assert (entry.delta, entry.balance_after, entry.reason) == (-100, 200, "redeem:coffee_discount")
        assert RewardRedemption.query.filter_by(user_id=user.id).count() == 1

    history = client.get("/rewards/redemptions").get_json()["redemptions"]
    assert history[0]["reward"]["id"] == "coffee_discount"
    ledger = client.get("/rewards/ledger").get_json()
    assert ledger["transactions"][0]["delta"] == -100


def test_redeem_refusals(app, citizen_client):
    insufficient = citizen_client.post("/rewards/movie_ticket/redeem")
    assert insufficient.status_code == 400
    assert insufficient.get_json() == {"success": False, "message": "Insufficient points"}

    missing = citizen_client.post("/rewards/free_car/redeem")
    assert missing.status_code == 404
    assert missing.get_json()["message"] == "Reward not found"


def test_certificate_redemption_issues_pdf_and_share_link(app):
    client = _rich_client(app, points=1200)
    body = client.post("/rewards/city_champion_certificate/redeem").get_json()
    assert body["success"] is True
    assert body["new_points"] == 200
    assert body["redemption"]["has_certificate"] is True

    download = client.get(f"/rewards/redemptions/{body['redemption']['id']}/certificate")
    assert download.status_code == 200
    assert download.mimetype == "application/pdf"
    assert download.data.startswith(b"%PDF")

    share_path = urlparse(body["certificate_share_url"]).path
    shared = app.test_client().get(share_path)
    assert shared.status_code == 200
    assert shared.data.startswith(b"%PDF")


def test_failed_redemption_removes_certificate(app, monkeypatch):
    client = _rich_client(app, points=1200)

    def _fail():
        raise SQLAlchemyError("commit failed")

    monkeypatch.setattr(db.session, "commit", _fail)
    response = client.post("/rewards/city_champion_certificate/redeem")
    assert response.status_code == 500
    assert os.listdir(app.config["CERTIFICATE_DIR"]) == []
    monkeypatch.undo()

    with app.app_context():
        user = User.query.filter_by(email="rich@example.com").one()
        assert user.points == 1200
        assert RewardRedemption.query.count() == 0


def test_expired_or_forged_share_links(app):
    client = _rich_client(app, points=1200)
    redemption_id = client.post("/rewards/city_champion_certificate/redeem").get_json()["redemption"]["id"]

    with app.app_context():
        crypto = EncryptionService.from_config(app.config)
        expired = crypto.create_secure_token(redemption_id, expiration_hours=1, now=0)
    anonymous = app.test_client()
    assert anonymous.get(f"/rewards/certificates/{expired}").status_code == 410
    assert anonymous.get("/rewards/certificates/forged-token").status_code == 404


def test_certificate_download_is_owner_only(app, citizen_client):
    client = _rich_client(app, points=1200)
    redemption_id = client.post("/rewards/city_champion_certificate/redeem").get_json()["redemption"]["id"]
    assert citizen_client.get(f"/rewards/redemptions/{redemption_id}/certificate").status_code == 404


def test_achievements_listing_and_category_filter(citizen_client):
    listing = citizen_client.get("/rewards/achievements").get_json()
    assert len(listing["achievements"]) == 8
    assert listing["counters"]["reports_submitted"] == 0

    special = citizen_client.get("/rewards/achievements?category=special").get_json()["achievements"]
    assert {a["id"] for a in special} == {"tech_pioneer", "streak_master", "drone_operator"}
    assert citizen_client.get("/rewards/achievements?category=bogus").status_code == 400


def test_achievement_check_is_idempotent(app, citizen_client, citizen_id):
    citizen_client.post(
        "/reports",
        json={
            "location": "Ring Road",
            "latitude": 18.5,
            "longitude": 73.8,
            "severity": "low",
            "image_url": "https://cdn.example.com/b.jpg",
        },
    )
    assert citizen_client.post("/rewards/achievements/check").get_json()["new_achievements"] == []
    with app.app_context():
        assert AchievementProgress.query.filter_by(user_id=citizen_id).count() == 1
        assert db.session.get(User, citizen_id).points == 25 + 50 + 50


def test_leaderboard_orders_accounts(app, citizen_client, citizen_id):
    make_user(app, "top@example.com", points=2500, full_name="Top Reporter")
    board = citizen_client.get("/leaderboard").get_json()
    assert board["leaderboard"][0]["full_name"] == "Top Reporter"
    assert board["leaderboard"][0]["rank"] == "Platinum Champion"
    assert board["leaderboard"][0]["position"] == 1
    assert board["me"]["user_id"] == citizen_id
