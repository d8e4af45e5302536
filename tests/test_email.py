"""
Tests for the email client, templates and announcement broadcasts
"""

import asyncio
import json

import httpx
import pytest

from academy import admin_routes, repository
from academy.admin_routes import send_announcement_emails
from academy.email_client import EmailClient, EmailDeliveryError
from academy.email_templates import announcement_email, invitation_email, welcome_email

API_URL = "https://mail.example.com/emails"


def make_client(handler, api_key="key-123"):
    return EmailClient(API_URL, api_key, "Academy <no-reply@example.com>", transport=httpx.MockTransport(handler))


class TestEmailClient:
    def test_send_posts_message(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "msg-1"})

        message_id = asyncio.run(make_client(handler).send_email("ana@example.com", "Hola", "<p>Hola</p>"))

        assert message_id == "msg-1"
        assert seen["auth"] == "Bearer key-123"
        assert seen["body"] == {
            "from": "Academy <no-reply@example.com>",
            "to": ["ana@example.com"],
            "subject": "Hola",
            "html": "<p>Hola</p>",
        }

    def test_api_error_raises(self):
        client = make_client(lambda request: httpx.Response(422, json={"message": "invalid"}))
        with pytest.raises(EmailDeliveryError):
            asyncio.run(client.send_email("ana@example.com", "Hola", "<p>Hola</p>"))

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(EmailDeliveryError):
            asyncio.run(make_client(handler).send_email("ana@example.com", "Hola", "<p>Hola</p>"))

    def test_missing_key_raises(self):
        client = make_client(lambda request: httpx.Response(200, json={"id": "x"}), api_key=None)
        assert not client.configured
        with pytest.raises(EmailDeliveryError):
            asyncio.run(client.send_email("ana@example.com", "Hola", "<p>Hola</p>"))


class TestTemplates:
    def test_user_input_is_escaped(self):
        html = welcome_email("<script>alert(1)</script>", "a@b.c", "http://testserver/auth/confirm?token_hash=t")
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_announcement_escapes_content(self):
        html = announcement_email("Nuevo <b>modulo</b>", "Ya esta disponible & listo")
        assert "Nuevo &lt;b&gt;modulo&lt;/b&gt;" in html
        assert "Ya esta disponible &amp; listo" in html
        assert "http://testserver/anuncios" in html

    def test_invitation_without_name(self):
        html = invitation_email(None, "http://testserver/invite/abc")
        assert "http://testserver/invite/abc" in html
        assert "None" not in html


RECIPIENTS = [
    {"id": "s1", "email": "uno@example.com", "full_name": "Uno"},
    {"id": "s2", "email": "dos@example.com", "full_name": "Dos"},
    {"id": "s3", "email": None, "full_name": "Sin email"},
]


class TestBroadcast:
    def test_failures_are_counted_not_fatal(self):
        from conftest import RecordingEmailClient

        recorder = RecordingEmailClient(fail_for={"dos@example.com"})
        sent = asyncio.run(send_announcement_emails(recorder, RECIPIENTS, "Aviso", "Contenido"))

        assert sent == 1
        assert [m["to"] for m in recorder.sent] == ["uno@example.com"]

    def test_broadcast_endpoint(self, client, admin_headers, email_client, fake_db, monkeypatch):
        fake_db(admin_routes)
        monkeypatch.setattr(repository, "list_enrolled_recipients", lambda cursor: RECIPIENTS[:2])

        response = client.post(
            "/api/admin/announcements/broadcast", json={"title": "Aviso", "content": "Contenido"}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Emails sent to 2 students",
            "total_students": 2,
            "successful_emails": 2,
        }

    def test_broadcast_without_students(self, client, admin_headers, email_client, fake_db, monkeypatch):
        fake_db(admin_routes)
        monkeypatch.setattr(repository, "list_enrolled_recipients", lambda cursor: [])

        response = client.post(
            "/api/admin/announcements/broadcast", json={"title": "Aviso", "content": "Contenido"}, headers=admin_headers
        )
        assert response.json()["message"] == "No enrolled students to notify"
        assert email_client.sent == []
