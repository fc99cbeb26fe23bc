from __future__ import annotations

import pytest

from src.school_fees.school_fees.core.enums import Role
from src.school_fees.school_fees.core.exceptions import AuthenticationError, ValidationError
from src.school_fees.school_fees.main import create_app


def test_authenticate_links_student_account(container):
    user = container.auth_service.authenticate("aarav", "student123")
    assert user.role == Role.STUDENT
    assert user.student_id == 1


def test_staff_login_has_no_student(container):
    assert container.auth_service.authenticate("admin", "admin123").student_id is None


@pytest.mark.parametrize("username, password", [("admin", "wrong"), ("nobody", "x"), ("old", "old123")])
def test_bad_credentials(container, username, password):
    with pytest.raises(AuthenticationError):
        container.auth_service.authenticate(username, password)


def test_username_is_required(container):
    with pytest.raises(ValidationError):
        container.auth_service.authenticate("  ", "x")


def test_login_me_logout(container, monkeypatch):
    monkeypatch.setenv("APP_ENV", "testing")
    client = create_app(container).test_client()

    assert client.post("/api/auth/login", json={"username": "admin", "password": "nope"}).status_code == 401
    assert client.post("/api/auth/login", json={"username": "admin", "password": "admin123"}).status_code == 200
    me = client.get("/api/auth/me").get_json()["data"]
    assert me == {"userId": 10, "name": "Admin Demo", "role": "admin", "studentId": None}

    client.post("/api/auth/logout")
    assert client.get("/api/auth/me").status_code == 401
