import os

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import PointTransaction, Report, ReportStatusHistory, User

from conftest import make_user, login


def _submit(client, image_file=None, **overrides):
    payload = {
        "location": "MG Road Junction",
        "latitude": 19.07,
        "longitude": 72.87,
        "severity": "high",
        "violations": ["Billboard width (45ft) exceeds maximum limit of 40ft"],
        "image_url": "https://cdn.example.com/billboard.jpg",
    }
    payload.update(overrides)
    if image_file is not None:
        payload.pop("image_url", None)
        payload["image"] = image_file
        return client.post("/reports", data=payload, content_type="multipart/form-data")
    return client.post("/reports", json=payload)


def _points(app, user_id):
    with app.app_context():
        return db.session.get(User, user_id).points


def test_first_report_credits_submission_bonus_and_achievement(app, citizen_client, citizen_id):
    response = _submit(citizen_client)
    assert response.status_code == 201
    body = response.get_json()
    report = body["report"]
    assert report["status"] == "pending"
    assert report["points_earned"] == 75
    assert report["first_time_location"] is True
    assert [a["id"] for a in body["new_achievements"]] == ["first_report"]
    # 75 submission + 50 first report bonus + 50 for the First Steps achievement
    assert body["points"] == 175

    with app.app_context():
        reasons = [t.reason for t in PointTransaction.query.filter_by(user_id=citizen_id).order_by(PointTransaction.id)]
        assert reasons == ["report_submitted", "first_report_bonus", "achievement:first_report"]
        assert ReportStatusHistory.query.filter_by(report_id=report["id"]).count() == 1


def test_second_report_at_same_location(app, citizen_client, citizen_id):
    _submit(citizen_client)
    response = _submit(citizen_client, location="  mg road   JUNCTION ", severity="low")
    report = response.get_json()["report"]
    assert report["first_time_location"] is False
    assert report["points_earned"] == 25
    assert _points(app, citizen_id) == 175 + 25


def test_multipart_upload_is_stored_and_hashed(app, citizen_client, image_file):
    response = _submit(
        citizen_client,
        image_file=image_file(),
        severity="critical",
        violations=["Visible rust and corrosion detected", "Missing required QR code with license information"],
    )
    assert response.status_code == 201
    report = response.get_json()["report"]
    assert len(report["violations"]) == 2
    assert report["evidence_flags"] == ["Missing EXIF metadata"]
    with app.app_context():
        stored = db.session.get(Report, report["id"])
        assert stored.image_hash
        assert os.path.isfile(stored.image_url)
        assert stored.image_url.startswith(app.config["REPORT_UPLOAD_FOLDER"])

    image = citizen_client.get(f"/reports/{report['id']}/image")
    assert image.status_code == 200
    assert image.mimetype == "image/png"


def test_reused_photo_is_flagged(citizen_client, image_file):
    _submit(citizen_client, image_file=image_file())
    report = _submit(citizen_client, image_file=image_file(), location="Station Road").get_json()["report"]
    assert "Image matches an earlier submission" in report["evidence_flags"]
    assert _submit(citizen_client).get_json()["report"]["evidence_flags"] == []


def test_failed_save_removes_uploaded_photo(app, citizen_client, image_file, monkeypatch):
    def _fail():
        raise SQLAlchemyError("commit failed")

    monkeypatch.setattr(db.session, "commit", _fail)
    response = _submit(citizen_client, image_file=image_file())
    assert response.status_code == 500
    assert os.listdir(app.config["REPORT_UPLOAD_FOLDER"]) == []


def test_upload_with_wrong_extension_is_rejected(citizen_client, image_file):
    response = _submit(citizen_client, image_file=image_file("billboard.gif"))
    assert response.status_code == 400
    assert response.get_json()["message"] == "File type not allowed"


def test_violations_fall_back_to_ai_analysis(citizen_client):
    response = _submit(citizen_client, violations=[], ai_analysis={"violations": ["Political content detected"]})
    assert response.get_json()["report"]["violations"] == ["Political content detected"]


def test_validation_errors(citizen_client):
    assert _submit(citizen_client, severity="urgent").status_code == 400
    assert _submit(citizen_client, latitude=123).status_code == 400
    assert _submit(citizen_client, location="   ").status_code == 400
    assert _submit(citizen_client, image_url="ftp://example.com/a.jpg").status_code == 400


def test_reports_require_login(app):
    assert app.test_client().get("/reports").status_code == 401


def test_list_filters_and_scope(app, citizen_client, official_client):
    _submit(citizen_client, severity="low")
    _submit(citizen_client, severity="critical", location="Station Road")

    mine = citizen_client.get("/reports?severity=critical").get_json()
    assert mine["total"] == 1
    assert mine["reports"][0]["severity"] == "critical"

    # A citizen asking for every report still only sees their own.
    assert citizen_client.get("/reports?scope=all").get_json()["total"] == 2
    assert official_client.get("/reports").get_json()["total"] == 0
    everything = official_client.get("/reports?scope=all&status=pending").get_json()
    assert everything["total"] == 2
    assert "owner" in everything["reports"][0]


def test_other_citizens_cannot_view_report(app, citizen_client):
    report_id = _submit(citizen_client).get_json()["report"]["id"]
    make_user(app, "neighbour@example.com")
    other = app.test_client()
    login(other, "neighbour@example.com")
    assert other.get(f"/reports/{report_id}").status_code == 403
    assert citizen_client.get(f"/reports/{report_id}").status_code == 200


def test_verify_then_resolve_credits_owner(app, citizen_client, official_client, citizen_id):
    report_id = _submit(citizen_client, severity="high").get_json()["report"]["id"]
    start = _points(app, citizen_id)

    verified = official_client.post(f"/reports/{report_id}/status", json={"status": "verified", "remarks": "Confirmed on site"})
    assert verified.status_code == 200
    assert verified.get_json()["points_awarded"] == 25

    resolved = official_client.post(f"/reports/{report_id}/status", json={"status": "resolved"})
    assert resolved.status_code == 200
    # report_resolved 100 x 1.5 for high severity + 20 for a first-time location
    assert resolved.get_json()["points_awarded"] == 170
    assert _points(app, citizen_id) == start + 25 + 170

    detail = citizen_client.get(f"/reports/{report_id}").get_json()
    assert [h["new_status"] for h in detail["history"]] == ["pending", "verified", "resolved"]
    assert detail["history"][1]["remarks"] == "Confirmed on site"


def test_terminal_status_cannot_change(app, citizen_client, official_client, citizen_id):
    report_id = _submit(citizen_client).get_json()["report"]["id"]
    assert official_client.post(f"/reports/{report_id}/status", json={"status": "rejected"}).status_code == 200
    before = _points(app, citizen_id)

    response = official_client.post(f"/reports/{report_id}/status", json={"status": "resolved"})
    assert response.status_code == 409
    assert _points(app, citizen_id) == before


def test_invalid_status_value(citizen_client, official_client):
    report_id = _submit(citizen_client).get_json()["report"]["id"]
    assert official_client.post(f"/reports/{report_id}/status", json={"status": "archived"}).status_code == 400
    assert official_client.post(f"/reports/{report_id}/status", json={"status": "pending"}).status_code == 409


def test_citizens_cannot_review(citizen_client):
    report_id = _submit(citizen_client).get_json()["report"]["id"]
    response = citizen_client.post(f"/reports/{report_id}/status", json={"status": "verified"})
    assert response.status_code == 403


def test_stats_and_map(citizen_client, official_client):
    first = _submit(citizen_client, severity="critical").get_json()["report"]["id"]
    _submit(citizen_client, severity="low", location="Station Road")
    official_client.post(f"/reports/{first}/status", json={"status": "verified"})

    stats = citizen_client.get("/reports/stats").get_json()
    assert stats == {"pending": 1, "verified": 1, "resolved": 0, "rejected": 0, "total": 2}

    points = citizen_client.get("/reports/map").get_json()["points"]
    weights = sorted(p["weight"] for p in points)
    assert weights == [0.25, 1.0]
