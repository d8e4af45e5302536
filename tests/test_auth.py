"""
Unit tests for authentication
"""

import pytest
from fastapi import HTTPException

from academy import auth, identity
from academy import repository
from academy.jwt_auth import create_access_token, create_refresh_token, decode_refresh_token, verify_token
from academy.models import LinkType


class TestHelpers:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, "/curso"),
            ("", "/curso"),
            ("/modulos/2", "/modulos/2"),
            ("//evil.example.com", "/curso"),
            ("https://evil.example.com", "/curso"),
            ("javascript:alert(1)", "/curso"),
            (42, "/curso"),
        ],
    )
    def test_sanitize_redirect(self, value, expected):
        assert identity.sanitize_redirect(value) == expected

    def test_normalize_email(self):
        assert identity.normalize_email("  Ana@Example.COM ") == "ana@example.com"
        assert identity.normalize_email("   ") is None
        assert identity.normalize_email(None) is None

    def test_password_hashing(self):
        hashed = identity.hash_password("secret123")
        assert hashed != "secret123"
        assert identity.verify_password("secret123", hashed)
        assert not identity.verify_password("wrong", hashed)
        assert not identity.verify_password("secret123", None)

    def test_link_token_is_stored_hashed(self):
        digest = identity.hash_link_token("abc")
        assert len(digest) == 64
        assert digest != "abc"

    def test_action_link(self):
        link = identity.build_action_link("tok", LinkType.RECOVERY, "/update-password", app_url="https://app.test/")
        assert link == "https://app.test/auth/confirm?token_hash=tok&type=recovery&next=%2Fupdate-password"

    def test_action_link_drops_external_next(self):
        link = identity.build_action_link("tok", LinkType.SIGNUP, "https://evil.example.com", app_url="https://a.b")
        assert link.endswith("next=%2Fcurso")


class TestTokens:
    def test_access_token_round_trip(self):
        payload = verify_token(create_access_token("u1", "a@b.c", "admin"))
        assert payload["sub"] == "u1"
        assert payload["role"] == "admin"

    def test_refresh_token_is_not_an_access_token(self):
        with pytest.raises(HTTPException) as exc:
            verify_token(create_refresh_token("u1", "a@b.c"))
        assert exc.value.status_code == 401

    def test_decode_refresh_token(self):
        assert decode_refresh_token(create_refresh_token("u1", "a@b.c", "student"))["sub"] == "u1"

    def test_refresh_rejects_access_token(self):
        with pytest.raises(HTTPException) as exc:
            decode_refresh_token(create_access_token("u1", "a@b.c"))
        assert exc.value.status_code == 401


class TestRefreshEndpoint:
    def test_role_comes_from_profile(self, client, fake_db, monkeypatch):
        fake_db(auth)
        monkeypatch.setattr(
            repository, "get_profile", lambda cursor, user_id: {"id": user_id, "email": "a@b.c", "role": "student"}
        )

        response = client.post("/api/auth/refresh", json={"refresh_token": create_refresh_token("u1", "a@b.c", "admin")})

        assert response.status_code == 200
        claims = verify_token(response.json()["access_token"])
        assert claims["sub"] == "u1"
        assert claims["role"] == "student"

    def test_deleted_account_cannot_refresh(self, client, fake_db, monkeypatch):
        fake_db(auth)
        monkeypatch.setattr(repository, "get_profile", lambda cursor, user_id: None)

        response = client.post("/api/auth/refresh", json={"refresh_token": create_refresh_token("u1", "a@b.c", "admin")})
        assert response.status_code == 401

    def test_bad_refresh_token(self, client, fake_db):
        fake_db(auth)
        response = client.post("/api/auth/refresh", json={"refresh_token": "garbage"})
        assert response.status_code == 401


REGISTRATION = {
    "email": "New@Example.com",
    "password": "secret123",
    "fullName": "Nueva Alumna",
    "country": "AR",
    "redirect": "/modulos/1",
}


@pytest.fixture
def signup(monkeypatch, fake_db):
    conn = fake_db(auth)
    state = {"users": {}, "deleted": [], "conn": conn}

    def create_user(cursor, email, password=None, full_name=None, country=None, **kw):
        if email in state["users"]:
            raise identity.EmailAlreadyRegistered(email)
        state["users"][email] = {"id": "user-1", "full_name": full_name, "country": country}
        return "user-1"

    monkeypatch.setattr(identity, "create_user", create_user)
    monkeypatch.setattr(identity, "generate_link_token", lambda cursor, user_id, link_type: "signup-token")
    monkeypatch.setattr(identity, "delete_user", lambda cursor, user_id: state["deleted"].append(user_id))
    return state


class TestRegistration:
    def test_register_sends_confirmation(self, client, signup, email_client):
        response = client.post("/api/auth/register", json=REGISTRATION)

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert signup["users"]["new@example.com"]["country"] == "AR"
        html = email_client.sent[0]["html"]
        assert "token_hash=signup-token" in html
        assert "%2Fmodulos%2F1" in html

    def test_missing_fields(self, client, signup, email_client):
        response = client.post("/api/auth/register", json={"email": "a@b.c", "password": "secret123"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required fields"

    def test_short_password(self, client, signup, email_client):
        response = client.post("/api/auth/register", json={**REGISTRATION, "password": "123"})
        assert response.status_code == 400
        assert signup["users"] == {}

    def test_duplicate_email(self, client, signup, email_client):
        signup["users"]["new@example.com"] = {"id": "existing"}
        response = client.post("/api/auth/register", json=REGISTRATION)
        assert response.status_code == 400
        assert response.json()["detail"] == "Este email ya esta registrado"

    def test_email_failure_removes_account(self, client, signup, email_client):
        email_client.fail_all = True
        response = client.post("/api/auth/register", json=REGISTRATION)

        assert response.status_code == 502
        assert signup["deleted"] == ["user-1"]
        assert signup["conn"].cursor_obj.closed


class TestLogin:
    def test_invalid_credentials(self, client, fake_db, monkeypatch):
        fake_db(auth)
        monkeypatch.setattr(identity, "authenticate", lambda cursor, email, password: None)

        response = client.post("/api/auth/login", json={"email": "x@example.com", "password": "nope12"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Email o contrasena incorrectos"

    def test_unconfirmed_email(self, client, fake_db, monkeypatch):
        fake_db(auth)
        monkeypatch.setattr(
            identity,
            "authenticate",
            lambda cursor, email, password: {"id": "u1", "email": email, "email_confirmed_at": None},
        )
        response = client.post("/api/auth/login", json={"email": "x@example.com", "password": "secret123"})
        assert response.status_code == 403

    def test_admin_login_redirects_to_admin(self, client, fake_db, monkeypatch):
        fake_db(auth)
        monkeypatch.setattr(
            identity,
            "authenticate",
            lambda cursor, email, password: {
                "id": "a1",
                "email": email,
                "full_name": "Admin",
                "role": "admin",
                "email_confirmed_at": "2026-01-01",
            },
        )
        monkeypatch.setattr(identity, "record_login", lambda cursor, user_id: None)

        response = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "secret123"})
        data = response.json()
        assert response.status_code == 200
        assert data["redirect"] == "/admin"
        assert verify_token(data["access_token"])["role"] == "admin"


class TestConfirmLink:
    def test_unknown_type_redirects_to_login(self, client):
        response = client.get("/auth/confirm?token_hash=x&type=magic", follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"] == "/login?error=auth"

    def test_signup_link_confirms_and_redirects(self, client, fake_db, monkeypatch):
        fake_db(auth)
        confirmed = []
        monkeypatch.setattr(
            identity, "verify_link_token", lambda cursor, token, link_type, consume=True: {"user_id": "u1"}
        )
        monkeypatch.setattr(identity, "confirm_email", lambda cursor, user_id: confirmed.append(user_id))

        response = client.get(
            "/auth/confirm?token_hash=t&type=signup&next=/modulos/1", follow_redirects=False
        )
        assert response.status_code == 303
        assert response.headers["location"] == "/modulos/1"
        assert confirmed == ["u1"]

    def test_recovery_link_is_passed_on(self, client, fake_db, monkeypatch):
        fake_db(auth)
        consumed = []

        def verify(cursor, token, link_type, consume=True):
            consumed.append(consume)
            return {"user_id": "u1"}

        monkeypatch.setattr(identity, "verify_link_token", verify)
        response = client.get(
            "/auth/confirm?token_hash=t&type=recovery&next=/update-password", follow_redirects=False
        )
        assert response.headers["location"] == "/update-password?token_hash=t"
        assert consumed == [False]

    def test_recovery_token_is_encoded_in_redirect(self, client, fake_db, monkeypatch):
        fake_db(auth)
        monkeypatch.setattr(identity, "verify_link_token", lambda cursor, token, link_type, consume=True: {"user_id": "u1"})

        response = client.get(
            "/auth/confirm?token_hash=a%26b%3Dc%20d&type=recovery&next=/update-password", follow_redirects=False
        )
        assert response.headers["location"] == "/update-password?token_hash=a%26b%3Dc+d"

    def test_expired_link(self, client, fake_db, monkeypatch):
        fake_db(auth)
        monkeypatch.setattr(identity, "verify_link_token", lambda cursor, token, link_type, consume=True: None)
        response = client.get("/auth/confirm?token_hash=t&type=signup", follow_redirects=False)
        assert response.headers["location"] == "/login?error=auth"


class TestPasswordReset:
    def test_unknown_email_still_succeeds(self, client, fake_db, monkeypatch, email_client):
        fake_db(auth)
        monkeypatch.setattr(identity, "get_user_by_email", lambda cursor, email: None)

        response = client.post("/api/auth/reset-password", json={"email": "ghost@example.com"})
        assert response.status_code == 200
        assert email_client.sent == []

    def test_invalid_recovery_token(self, client, fake_db, monkeypatch):
        fake_db(auth)
        monkeypatch.setattr(identity, "verify_link_token", lambda cursor, token, link_type, consume=True: None)

        response = client.post("/api/auth/update-password", json={"token_hash": "bad", "password": "secret123"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Enlace invalido o expirado"
