import io

import pytest

from extensions import db
from models import DroneSurvey, ImageScan, PointTransaction, User
from utils.ai_vision import AIVisionError, ImageAnalyzer

from conftest import png_bytes


class FixedAnalyzer(ImageAnalyzer):
    name = "fixed"

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    def analyze(self, image_bytes, mime_type, location):
        if self.error:
            raise self.error
        return self.result


FINDINGS = {
    "is_unauthorized": True,
    "confidence": 88,
    "violations": ["Political content detected: \"vote\""],
    "structural_hazards": ["Visible rust and corrosion detected"],
    "obscene_content": [],
    "political_content": ["vote"],
    "qr_code_detected": True,
    "billboard_info": {},
    "privacy_blurred": False,
}


def _scan(client, **form):
    data = {"latitude": "19.07", "longitude": "72.87", "image": (io.BytesIO(png_bytes()), "scan.png")}
    data.update(form)
    return client.post("/scans/analyze", data=data, content_type="multipart/form-data")


@pytest.fixture()
def use_analyzer(monkeypatch):
    def _install(analyzer):
        monkeypatch.setattr("routes.scans.get_image_analyzer", lambda config: analyzer)

    return _install


def test_scan_credits_each_finding(app, citizen_client, citizen_id, use_analyzer):
    use_analyzer(FixedAnalyzer(result=FINDINGS))
    response = _scan(citizen_client)
    assert response.status_code == 200
    body = response.get_json()
    assert {a["action"]: a["points"] for a in body["awards"]} == {
        "ai_scan_used": 5,
        "structural_hazard_found": 75,
        "political_ad_found": 150,
        "qr_code_scanned": 15,
    }
    assert body["points_awarded"] == 245
    assert body["points"] == 245

    with app.app_context():
        scan = db.session.get(ImageScan, body["scan_id"])
        assert scan.analyzer == "fixed"
        assert scan.points_awarded == 245
        assert PointTransaction.query.filter_by(user_id=citizen_id).count() == 4


def test_scan_with_simulated_analyzer(app, citizen_client):
    response = _scan(citizen_client)
    assert response.status_code == 200
    body = response.get_json()
    assert body["awards"][0] == {"action": "ai_scan_used", "points": 5}
    assert body["points"] == body["points_awarded"]


def test_scan_failure_returns_tagged_error(app, citizen_client, citizen_id, use_analyzer):
    use_analyzer(FixedAnalyzer(error=AIVisionError("Slow down", code="rate-limited", retry_after=30)))
    response = _scan(citizen_client)
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "30"
    assert response.get_json() == {
        "success": False,
        "error": {"code": "rate-limited", "message": "Slow down", "retryAfter": 30},
    }
    with app.app_context():
        assert db.session.get(User, citizen_id).points == 0
        assert ImageScan.query.count() == 0


def test_scan_needs_image_and_coordinates(citizen_client):
    assert citizen_client.post("/scans/analyze", data={"latitude": "1", "longitude": "2"}).status_code == 400
    assert _scan(citizen_client, latitude="north").status_code == 400


def test_scan_rate_limit(app, citizen_client, use_analyzer):
    app.config["SCAN_HOURLY_LIMIT"] = 1
    use_analyzer(FixedAnalyzer(result=FINDINGS))
    assert _scan(citizen_client).status_code == 200
    assert _scan(citizen_client).status_code == 429


def test_survey_lifecycle_credits_operator(app, official_client, official_id):
    started = official_client.post("/drone-surveys", json={"center": {"lat": 19.07, "lng": 72.87}, "radius": 3})
    assert started.status_code == 201
    survey = started.get_json()["survey"]
    assert survey["status"] == "in_progress"
    assert survey["mission_id"].startswith("DRONE_")
    assert survey["area"]["altitude"] == 100

    completed = official_client.post(f"/drone-surveys/{survey['mission_id']}/complete")
    assert completed.status_code == 200
    body = completed.get_json()
    assert body["points_awarded"] == 200
    results = body["survey"]["results"]
    assert 5 <= len(results["violations"]) <= 19
    assert results["total_billboards"] > len(results["violations"])

    again = official_client.post(f"/drone-surveys/{survey['mission_id']}/complete")
    assert again.status_code == 409

    with app.app_context():
        assert db.session.get(User, official_id).points == 200
        assert DroneSurvey.query.filter_by(status="completed").count() == 1


def test_survey_abort_and_validation(official_client):
    assert official_client.post("/drone-surveys", json={"center": {"lat": 200, "lng": 0}}).status_code == 400
    assert official_client.post("/drone-surveys", json={"center": {"lat": 1, "lng": 1}, "radius": 500}).status_code == 400

    mission_id = official_client.post("/drone-surveys", json={"center": {"lat": 1, "lng": 1}}).get_json()["survey"]["mission_id"]
    assert official_client.post(f"/drone-surveys/{mission_id}/abort").status_code == 200
    assert official_client.post(f"/drone-surveys/{mission_id}/complete").status_code == 409
    listing = official_client.get("/drone-surveys?status=aborted").get_json()["surveys"]
    assert [s["mission_id"] for s in listing] == [mission_id]


def test_citizens_cannot_fly_surveys(citizen_client):
    assert citizen_client.post("/drone-surveys", json={"center": {"lat": 1, "lng": 1}}).status_code == 403
    assert citizen_client.get("/drone-surveys").status_code == 403
