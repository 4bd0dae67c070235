import os
import sys
import tempfile
from contextlib import nullcontext

import pytest
from flask import has_app_context

# Must be set before the application module is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SESSION_SECRET", "test-session-secret")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("UPLOAD_FOLDER", tempfile.mkdtemp(prefix="manage-booking-uploads-"))

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app import app as flask_app  # noqa: E402
from extensions import db  # noqa: E402
from models import User  # noqa: E402

PASSWORD = "Secret#123"


@pytest.fixture(autouse=True)
def clean_db():
    flask_app.config["TESTING"] = True
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
    yield
    with flask_app.app_context():
        db.session.remove()


@pytest.fixture
def app():
    return flask_app


@pytest.fixture
def app_ctx():
    with flask_app.app_context():
        yield
        db.session.rollback()


@pytest.fixture
def upload_dir(tmp_path):
    previous = flask_app.config["UPLOAD_FOLDER"]
    flask_app.config["UPLOAD_FOLDER"] = str(tmp_path)
    yield tmp_path
    flask_app.config["UPLOAD_FOLDER"] = previous


def create_operator(username="frontdesk", password=PASSWORD, name="Maria", surname="Santos"):
    """Insert an operator and return its id, reusing an active app context."""
    with nullcontext() if has_app_context() else flask_app.app_context():
        user = User(name=name, surname=surname, username=username)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user.id


@pytest.fixture
def operator_id():
    return create_operator()


@pytest.fixture
def client():
    return flask_app.test_client()


@pytest.fixture
def logged_in_client(operator_id):
    client = flask_app.test_client()
    response = client.post("/login", json={"username": "frontdesk", "password": PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture
def auth_headers(operator_id):
    client = flask_app.test_client()
    response = client.post("/login", json={"username": "frontdesk", "password": PASSWORD})
    return {"Authorization": f"Bearer {response.get_json()['token']}"}


def customer_payload(**overrides):
    payload = {
        "name": "Juan dela Cruz",
        "mobile_number": "09171234567",
        "nationality": "Filipino",
        "gender": "Male",
        "id_document": "P1234567",
        "address": "12 Mabini St, Manila",
        "bed_type": "Queen",
        "room_type": "Deluxe",
        "room_number": "101",
        "birth_date": "1990-05-17",
        "check_in": "2024-01-01T10:00",
        "check_out": "2024-01-02T11:00",
        "rate_per_day": "100.00",
    }
    payload.update(overrides)
    return payload
