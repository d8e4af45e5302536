"""
Tests for forum, direct messages and announcements
"""

from datetime import datetime

import pytest

from academy import admin_routes, community_routes, repository
from academy.access import AccessContext
from academy.community_routes import group_conversations


def test_group_conversations():
    rows = [
        {"student_id": "s1", "sender_id": "s1", "message": "tercera", "created_at": datetime(2026, 1, 3), "read_at": None},
        {"student_id": "s2", "sender_id": "admin", "message": "hola s2", "created_at": datetime(2026, 1, 2), "read_at": None},
        {"student_id": "s1", "sender_id": "admin", "message": "respuesta", "created_at": datetime(2026, 1, 2), "read_at": None},
        {"student_id": "s1", "sender_id": "s1", "message": "primera", "created_at": datetime(2026, 1, 1), "read_at": None},
        {
            "student_id": "s2",
            "sender_id": "s2",
            "message": "leida",
            "created_at": datetime(2026, 1, 1),
            "read_at": datetime(2026, 1, 1),
        },
    ]

    conversations = group_conversations(rows)

    assert [c["student_id"] for c in conversations] == ["s1", "s2"]
    assert conversations[0]["last_message"] == "tercera"
    assert conversations[0]["unread_count"] == 2
    assert conversations[1]["last_message"] == "hola s2"
    assert conversations[1]["unread_count"] == 0


@pytest.fixture
def forum(monkeypatch, fake_db):
    conn = fake_db(community_routes)
    state = {"posts": {"p1": {"id": "p1", "user_id": "author-1", "title": "Pregunta", "is_answered": False}}, "replies": []}

    monkeypatch.setattr(community_routes, "get_post", lambda cursor, post_id: state["posts"].get(post_id))
    monkeypatch.setattr(community_routes, "insert_post", lambda cursor, user_id, title, text: "p2")

    def insert_reply(cursor, post_id, user_id, text, is_admin_reply):
        state["replies"].append({"post_id": post_id, "user_id": user_id, "is_admin_reply": is_admin_reply})
        return f"r{len(state['replies'])}"

    def set_post_answered(cursor, post_id, answered=True):
        state["posts"][post_id]["is_answered"] = answered

    monkeypatch.setattr(community_routes, "insert_reply", insert_reply)
    monkeypatch.setattr(community_routes, "set_post_answered", set_post_answered)
    state["conn"] = conn
    return state


class TestForum:
    def test_create_post(self, client, forum, student_headers):
        response = client.post(
            "/api/forum/posts",
            json={"title": "Como configuro la camara?", "content": "No encuentro la opcion en el modulo dos."},
            headers=student_headers,
        )
        assert response.status_code == 201
        assert response.json()["id"] == "p2"

    def test_short_title(self, client, forum, student_headers):
        response = client.post(
            "/api/forum/posts",
            json={"title": "  Hi  ", "content": "Un contenido suficientemente largo."},
            headers=student_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "El titulo debe tener al menos 5 caracteres"

    def test_short_content(self, client, forum, student_headers):
        response = client.post(
            "/api/forum/posts", json={"title": "Titulo valido", "content": "corto"}, headers=student_headers
        )
        assert response.status_code == 400

    def test_admin_reply_is_flagged(self, client, forum, admin_headers, student_headers):
        client.post("/api/forum/posts/p1/replies", json={"content": "Revisa el modulo 3"}, headers=admin_headers)
        client.post("/api/forum/posts/p1/replies", json={"content": "Gracias, funciono"}, headers=student_headers)

        assert [r["is_admin_reply"] for r in forum["replies"]] == [True, False]

    def test_short_reply(self, client, forum, student_headers):
        response = client.post("/api/forum/posts/p1/replies", json={"content": " ok "}, headers=student_headers)
        assert response.status_code == 400
        assert forum["replies"] == []

    def test_reply_to_missing_post(self, client, forum, student_headers):
        response = client.post("/api/forum/posts/nope/replies", json={"content": "Hola a todos"}, headers=student_headers)
        assert response.status_code == 404

    def test_only_author_or_admin_marks_answered(self, client, forum, student_headers, admin_headers):
        from conftest import bearer

        assert client.post("/api/forum/posts/p1/answered", headers=student_headers).status_code == 403
        assert forum["posts"]["p1"]["is_answered"] is False

        assert client.post("/api/forum/posts/p1/answered", headers=bearer("author-1")).status_code == 200
        assert forum["posts"]["p1"]["is_answered"] is True

        forum["posts"]["p1"]["is_answered"] = False
        assert client.post("/api/forum/posts/p1/answered", headers=admin_headers).status_code == 200

    def test_requires_login(self, client, forum):
        assert client.get("/api/forum/posts").status_code == 401


class TestMessages:
    def test_student_message(self, client, fake_db, student_headers):
        conn = fake_db(community_routes)
        response = client.post("/api/messages", json={"message": "  Hola equipo  "}, headers=student_headers)

        assert response.status_code == 201
        message = response.json()["message"]
        assert message["message"] == "Hola equipo"
        assert message["student_id"] == message["sender_id"] == "student-1"
        assert conn.commits == 1

    def test_blank_message(self, client, fake_db, student_headers):
        fake_db(community_routes)
        response = client.post("/api/messages", json={"message": "   "}, headers=student_headers)
        assert response.status_code == 400

    def test_student_reading_marks_staff_messages(self, client, fake_db, student_headers, monkeypatch):
        fake_db(community_routes)
        calls = []
        monkeypatch.setattr(community_routes, "fetch_thread", lambda cursor, student_id: [])
        monkeypatch.setattr(
            community_routes,
            "mark_thread_read",
            lambda cursor, student_id, reader_is_staff: calls.append((student_id, reader_is_staff)) or 0,
        )

        assert client.get("/api/messages", headers=student_headers).status_code == 200
        assert calls == [("student-1", False)]

    def test_admin_reading_marks_student_messages(self, client, fake_db, admin_headers, monkeypatch):
        fake_db(admin_routes)
        calls = []
        monkeypatch.setattr(repository, "get_profile", lambda cursor, user_id: {"id": user_id, "email": "s@x.com"})
        monkeypatch.setattr(admin_routes, "fetch_thread", lambda cursor, student_id: [])
        monkeypatch.setattr(
            admin_routes,
            "mark_thread_read",
            lambda cursor, student_id, reader_is_staff: calls.append((student_id, reader_is_staff)) or 1,
        )

        response = client.get("/api/admin/messages/student-9", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["student"]["id"] == "student-9"
        assert calls == [("student-9", True)]

    def test_admin_inbox(self, client, fake_db, admin_headers, monkeypatch):
        fake_db(admin_routes)
        monkeypatch.setattr(
            admin_routes,
            "list_all_messages",
            lambda cursor: [
                {"student_id": "s1", "sender_id": "s1", "message": "ayuda", "created_at": "2026-01-01", "read_at": None}
            ],
        )
        response = client.get("/api/admin/messages", headers=admin_headers)
        assert response.json()["conversations"][0]["unread_count"] == 1


class TestAnnouncements:
    def test_unpaid_students_are_refused(self, client, fake_db, student_headers, monkeypatch):
        fake_db(community_routes)
        monkeypatch.setattr(
            community_routes, "load_access_context", lambda cursor, user: AccessContext(user=user, has_enrollment=False)
        )
        response = client.get("/api/announcements", headers=student_headers)
        assert response.status_code == 403

    def test_paid_students_see_announcements(self, client, fake_db, student_headers, monkeypatch):
        fake_db(community_routes)
        monkeypatch.setattr(
            community_routes, "load_access_context", lambda cursor, user: AccessContext(user=user, has_enrollment=True)
        )
        monkeypatch.setattr(
            community_routes, "list_published_announcements", lambda cursor: [{"id": "a1", "title": "Bienvenidos"}]
        )
        response = client.get("/api/announcements", headers=student_headers)
        assert response.json()["announcements"][0]["title"] == "Bienvenidos"

    def test_admin_creates_and_broadcasts(self, client, fake_db, admin_headers, email_client, monkeypatch):
        conn = fake_db(admin_routes)
        monkeypatch.setattr(
            repository, "list_enrolled_recipients", lambda cursor: [{"id": "s1", "email": "s1@example.com"}]
        )

        response = client.post(
            "/api/admin/announcements",
            json={"title": "Nuevo modulo", "content": "Ya disponible", "send_email": True},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["broadcast"]["successful_emails"] == 1
        insert = next(params for query, params in conn.cursor_obj.statements if "INSERT INTO announcements" in query)
        assert insert[3] == "admin-1"
        assert insert[4] is not None

    def test_admin_toggle_requires_changes(self, client, fake_db, admin_headers):
        fake_db(admin_routes)
        response = client.patch("/api/admin/announcements/a1", json={}, headers=admin_headers)
        assert response.status_code == 400
