import io

import pytest
from PIL import Image

from app import create_app
from extensions import db
from models import Role, User
from utils.security import reset_attempts

PASSWORD = "Str0ng!Password"


@pytest.fixture()
def app(tmp_path):
    app = create_app(
        "testing",
        {
            "LOG_DIR": str(tmp_path / "logs"),
            "REPORT_UPLOAD_FOLDER": str(tmp_path / "uploads"),
            "CERTIFICATE_DIR": str(tmp_path / "certificates"),
        },
    )
    reset_attempts()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


def make_user(app, email, role="Citizen", points=0, full_name="Test Citizen", city="Mumbai"):
    with app.app_context():
        user = User(
            full_name=full_name,
            email=email,
            city=city,
            role=Role.get_or_create(role),
            points=points,
            is_active=True,
        )
        user.set_password(PASSWORD)
        db.session.add(user)
        db.session.commit()
        return user.id


def login(client, email):
    response = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.get_json()
    return response


@pytest.fixture()
def citizen_id(app):
    return make_user(app, "citizen@example.com")


@pytest.fixture()
def official_id(app):
    return make_user(app, "official@example.com", role="Official", full_name="Ward Officer")


@pytest.fixture()
def citizen_client(app, citizen_id):
    client = app.test_client()
    login(client, "citizen@example.com")
    return client


@pytest.fixture()
def official_client(app, official_id):
    client = app.test_client()
    login(client, "official@example.com")
    return client


def png_bytes(color="red", size=(16, 16)):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture()
def image_file():
    def _build(name="billboard.png"):
        return (io.BytesIO(png_bytes()), name)

    return _build
