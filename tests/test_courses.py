"""
Tests for course listing, lesson pages and admin content management
"""

import pytest

from academy import admin_routes
from academy.access import AccessContext
from academy.courses import content
from academy.courses import routes as course_routes
from academy.storage import LocalObjectStorage, get_storage

MODULES = [
    {"id": "m0", "title": "Bienvenida", "order_index": 0, "bunny_video_guid": "intro-guid", "resources": []},
    {"id": "m1", "title": "Fundamentos", "order_index": 1, "bunny_video_guid": None, "resources": []},
    {"id": "m2", "title": "Avanzado", "order_index": 2, "bunny_video_guid": None, "resources": []},
]
LESSONS = {
    "m1": [
        {"id": "l1", "module_id": "m1", "title": "Uno", "order_index": 0, "resources": []},
        {"id": "l2", "module_id": "m1", "title": "Dos", "order_index": 1, "bunny_video_guid": "g2", "resources": []},
        {"id": "l3", "module_id": "m1", "title": "Tres", "order_index": 2, "resources": []},
    ]
}


@pytest.fixture
def catalog(monkeypatch, fake_db, tmp_path):
    from academy.server import app

    fake_db(course_routes)
    enrolled = {"value": False}
    storage = LocalObjectStorage(str(tmp_path), "lesson-resources", "secret", "http://testserver")
    app.dependency_overrides[get_storage] = lambda: storage

    monkeypatch.setattr(
        course_routes,
        "load_access_context",
        lambda cursor, user: AccessContext(user=user, has_enrollment=enrolled["value"]),
    )
    monkeypatch.setattr(content, "list_modules", lambda cursor, published_only=True: [dict(m) for m in MODULES])
    monkeypatch.setattr(
        content, "get_module", lambda cursor, module_id, published_only=True: next(
            (dict(m) for m in MODULES if m["id"] == module_id), None
        )
    )
    monkeypatch.setattr(
        content, "list_all_published_lessons", lambda cursor: [lesson for ls in LESSONS.values() for lesson in ls]
    )
    monkeypatch.setattr(
        content, "list_lessons", lambda cursor, module_id, published_only=True: [dict(x) for x in LESSONS.get(module_id, [])]
    )
    monkeypatch.setattr(
        content,
        "progress_map",
        lambda cursor, unit, user_id: {"l1": {"completed": True, "progress_seconds": 300}} if unit == "lesson" else {},
    )
    monkeypatch.setattr(content, "get_progress", lambda cursor, unit, user_id, unit_id: None)
    return enrolled


class TestModuleList:
    def test_free_student_sees_locks(self, client, catalog, student_headers):
        data = client.get("/api/course/modules", headers=student_headers).json()

        assert data["has_enrollment"] is False
        assert [card["is_locked"] for card in data["modules"]] == [False, True, True]
        assert data["modules"][1]["lesson_count"] == 3
        assert data["modules"][1]["completed_lessons"] == 1

    def test_enrolled_student_sees_everything(self, client, catalog, student_headers):
        catalog["value"] = True
        data = client.get("/api/course/catalog", headers=student_headers).json()

        assert data["free_modules"] == 3
        assert data["locked_modules"] == 0

    def test_locked_module_detail(self, client, catalog, student_headers):
        response = client.get("/api/course/modules/m2", headers=student_headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "PAID_ACCESS_REQUIRED"

    def test_free_module_detail(self, client, catalog, student_headers):
        data = client.get("/api/course/modules/m0", headers=student_headers).json()

        assert data["embed_url"].endswith("/embed/12345/intro-guid?autoplay=false&preload=true&responsive=true")
        assert data["progress_event"] == "video-progress-m0"
        assert data["progress"]["completed"] is False

    def test_unknown_module(self, client, catalog, student_headers):
        assert client.get("/api/course/modules/zzz", headers=student_headers).status_code == 404


class TestLessonPage:
    def test_navigation(self, client, catalog, student_headers):
        catalog["value"] = True
        data = client.get("/api/course/modules/m1/lessons/l2", headers=student_headers).json()

        assert data["navigation"]["previous"] == {"id": "l1", "title": "Uno"}
        assert data["navigation"]["next"] == {"id": "l3", "title": "Tres"}
        assert data["navigation"]["position"] == 2
        assert data["navigation"]["total"] == 3
        assert data["progress_event"] == "video-progress-l2"

    def test_first_lesson_has_no_previous(self, client, catalog, student_headers):
        catalog["value"] = True
        data = client.get("/api/course/modules/m1/lessons/l1", headers=student_headers).json()
        assert data["navigation"]["previous"] is None

    def test_lesson_of_other_module(self, client, catalog, student_headers):
        catalog["value"] = True
        assert client.get("/api/course/modules/m1/lessons/l9", headers=student_headers).status_code == 404

    def test_lesson_in_locked_module(self, client, catalog, student_headers):
        assert client.get("/api/course/modules/m1/lessons/l1", headers=student_headers).status_code == 403


class TestAdminContent:
    def test_create_module(self, client, fake_db, admin_headers, monkeypatch):
        fake_db(admin_routes)
        created = []
        monkeypatch.setattr(content, "create_module", lambda cursor, data: created.append(data) or "new-module")

        response = client.post(
            "/api/admin/modules",
            json={
                "title": "Modulo nuevo",
                "order_index": 4,
                "resources": [{"name": "Guia", "url": "https://x.example.com/g.pdf", "type": "pdf"}],
            },
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["id"] == "new-module"
        assert created[0]["resources"][0]["type"] == "pdf"
        assert created[0]["is_published"] is False

    def test_negative_order_rejected(self, client, fake_db, admin_headers):
        fake_db(admin_routes)
        response = client.post("/api/admin/modules", json={"title": "X", "order_index": -1}, headers=admin_headers)
        assert response.status_code == 422

    def test_update_missing_module(self, client, fake_db, admin_headers, monkeypatch):
        fake_db(admin_routes)
        monkeypatch.setattr(content, "get_module", lambda cursor, module_id, published_only=True: None)

        response = client.put("/api/admin/modules/nope", json={"title": "Nuevo"}, headers=admin_headers)
        assert response.status_code == 404

    def test_publish_toggle(self, client, fake_db, admin_headers, monkeypatch):
        fake_db(admin_routes)
        changes = []
        monkeypatch.setattr(content, "get_lesson", lambda cursor, lesson_id, published_only=True: {"id": lesson_id})
        monkeypatch.setattr(
            content, "update_lesson", lambda cursor, lesson_id, data: changes.append((lesson_id, data)) or 1
        )

        response = client.patch("/api/admin/lessons/l1/publish", json={"is_published": True}, headers=admin_headers)
        assert response.status_code == 200
        assert changes == [("l1", {"is_published": True})]

    def test_partial_update_only_sends_given_fields(self, client, fake_db, admin_headers, monkeypatch):
        fake_db(admin_routes)
        changes = []
        monkeypatch.setattr(content, "get_module", lambda cursor, module_id, published_only=True: {"id": module_id})
        monkeypatch.setattr(content, "update_module", lambda cursor, module_id, data: changes.append(data) or 1)

        client.put("/api/admin/modules/m1", json={"description": "Nueva descripcion"}, headers=admin_headers)
        assert changes == [{"description": "Nueva descripcion"}]

    def test_delete_missing_lesson(self, client, fake_db, admin_headers, monkeypatch):
        fake_db(admin_routes)
        monkeypatch.setattr(content, "delete_lesson", lambda cursor, lesson_id: 0)
        assert client.delete("/api/admin/lessons/nope", headers=admin_headers).status_code == 404

    @pytest.mark.parametrize("field", ["order_index", "title", "is_published", "duration_seconds"])
    def test_null_for_required_column_rejected(self, client, fake_db, admin_headers, monkeypatch, field):
        fake_db(admin_routes)
        changes = []
        monkeypatch.setattr(content, "get_module", lambda cursor, module_id, published_only=True: {"id": module_id})
        monkeypatch.setattr(content, "update_module", lambda cursor, module_id, data: changes.append(data) or 1)

        response = client.put("/api/admin/modules/m1", json={field: None}, headers=admin_headers)

        assert response.status_code == 422
        assert changes == []

    def test_null_lesson_order_rejected(self, client, fake_db, admin_headers):
        fake_db(admin_routes)
        response = client.put("/api/admin/lessons/l1", json={"order_index": None}, headers=admin_headers)
        assert response.status_code == 422

    def test_nullable_field_may_be_cleared(self, client, fake_db, admin_headers, monkeypatch):
        fake_db(admin_routes)
        changes = []
        monkeypatch.setattr(content, "get_module", lambda cursor, module_id, published_only=True: {"id": module_id})
        monkeypatch.setattr(content, "update_module", lambda cursor, module_id, data: changes.append(data) or 1)

        response = client.put("/api/admin/modules/m1", json={"bunny_video_guid": None}, headers=admin_headers)

        assert response.status_code == 200
        assert changes == [{"bunny_video_guid": None}]
