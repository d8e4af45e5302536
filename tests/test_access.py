"""
Tests for module gating and admin checks
"""

import pytest
from fastapi import HTTPException

from academy import admin_routes
from academy.access import (
    PAID_ACCESS_REQUIRED,
    AccessContext,
    can_access_module,
    can_moderate_post,
    ensure_can_moderate_post,
    load_access_context,
)
from academy.models import CurrentUser, Role


@pytest.mark.parametrize(
    "has_enrollment, is_admin, order_index, expected",
    [
        (False, False, 0, True),
        (False, False, 1, False),
        (False, False, 5, False),
        (True, False, 0, True),
        (True, False, 3, True),
        (False, True, 0, True),
        (False, True, 7, True),
        (True, True, 2, True),
    ],
)
def test_gate_truth_table(has_enrollment, is_admin, order_index, expected):
    assert can_access_module(has_enrollment, is_admin, order_index) is expected


class TestAccessContext:
    def test_free_module_open_to_everyone(self):
        ctx = AccessContext(user=CurrentUser(id="u1", email="a@b.c"), has_enrollment=False)
        ctx.ensure_module_access({"order_index": 0})

    def test_locked_module_raises_paid_access_required(self):
        ctx = AccessContext(user=CurrentUser(id="u1", email="a@b.c"), has_enrollment=False)
        with pytest.raises(HTTPException) as exc:
            ctx.ensure_module_access({"order_index": 1})
        assert exc.value.status_code == 403
        assert exc.value.detail == PAID_ACCESS_REQUIRED

    def test_missing_order_index_fails_closed(self):
        student = CurrentUser(id="u1", email="a@b.c")
        assert not AccessContext(user=student, has_enrollment=False).can_access({"order_index": None})
        assert not AccessContext(user=student, has_enrollment=False).can_access({})
        assert AccessContext(user=student, has_enrollment=True).can_access({"order_index": None})

    def test_paid_access(self):
        student = CurrentUser(id="u1", email="a@b.c")
        admin = CurrentUser(id="u2", email="x@y.z", role=Role.ADMIN)
        assert AccessContext(user=student, has_enrollment=True).has_paid_access
        assert AccessContext(user=admin, has_enrollment=False).has_paid_access
        with pytest.raises(HTTPException):
            AccessContext(user=student, has_enrollment=False).ensure_paid_access()

    def test_admin_skips_enrollment_lookup(self):
        class ExplodingCursor:
            def execute(self, *args, **kwargs):
                raise AssertionError("no query expected for admins")

        admin = CurrentUser(id="u2", email="x@y.z", role=Role.ADMIN)
        ctx = load_access_context(ExplodingCursor(), admin)
        assert ctx.can_access({"order_index": 9})


class TestPostModeration:
    POST = {"id": "p1", "user_id": "author-1"}

    def test_author_and_admin_may_moderate(self):
        assert can_moderate_post(CurrentUser(id="author-1", email="a@b.c"), self.POST)
        assert can_moderate_post(CurrentUser(id="u9", email="x@y.z", role=Role.ADMIN), self.POST)

    def test_other_students_are_refused(self):
        other = CurrentUser(id="u2", email="o@b.c")
        assert not can_moderate_post(other, self.POST)
        with pytest.raises(HTTPException) as exc:
            ensure_can_moderate_post(other, self.POST)
        assert exc.value.status_code == 403


class TestAdminEndpoints:
    def test_requires_session(self, client):
        response = client.get("/api/admin/stats")
        assert response.status_code == 401
        assert response.json()["detail"] == "No autorizado"

    def test_rejects_students(self, client, student_headers):
        response = client.get("/api/admin/stats", headers=student_headers)
        assert response.status_code == 403

    def test_rejects_bad_token(self, client):
        response = client.get("/api/admin/stats", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_admin_passes(self, client, admin_headers, fake_db, monkeypatch):
        conn = fake_db(admin_routes)

        counts = iter([{"total": 4}, {"total": 3}, {"total": 2}, {"total": 1}])
        monkeypatch.setattr(conn.cursor_obj, "fetchone", lambda: next(counts))

        response = client.get("/api/admin/stats", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total_students"] == 4
        assert data["completed_enrollments"] == 3
        assert data["published_modules"] == 2
        assert data["pending_invitations"] == 1
        assert data["recent_enrollments"] == []
