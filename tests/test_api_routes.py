"""
tests/test_api_routes.py — FastAPI Route Integration Tests
===========================================================

Auth guards, role checks and the main authority / citizen / admin flows
through the FastAPI TestClient, backed by in-memory SQLite.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from conftest import make_category, make_issue, make_token, make_user
from sqlalchemy import select
from sqlalchemy.orm import Session

from civicfix.database.models import Badge, Issue, IssueCategory, IssueUpdate, UserRole
from civicfix.services import settings_service


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def officer(seeded_engine) -> str:
    return make_user(seeded_engine, "Officer", role=UserRole.AUTHORITY)


@pytest.fixture
def category(seeded_engine, officer) -> str:
    return make_category(seeded_engine, "Drainage", authority_id=officer)


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAuthGuards:
    PROTECTED_GET = [
        "/api/notifications",
        "/api/leaderboard",
        "/api/me/badges",
        "/api/authority/metrics",
        "/api/admin/badges",
        "/api/admin/settings",
        "/api/admin/categories",
        "/api/admin/authorities",
        "/api/admin/audit",
        "/api/admin/logs",
    ]

    ADMIN_GET = [
        "/api/admin/badges",
        "/api/admin/settings",
        "/api/admin/categories",
        "/api/admin/authorities",
        "/api/admin/audit",
        "/api/admin/logs",
    ]

    @pytest.mark.parametrize("endpoint", PROTECTED_GET)
    def test_no_token_returns_401(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", PROTECTED_GET)
    def test_invalid_token_returns_401(self, client, endpoint):
        resp = client.get(endpoint, headers=_auth("not-a-jwt"))
        assert resp.status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_GET)
    def test_citizen_token_returns_403(self, client, endpoint):
        resp = client.get(endpoint, headers=_auth(make_token("c1", "citizen")))
        assert resp.status_code == 403

    def test_citizen_cannot_update_status(self, client):
        resp = client.post(
            "/api/authority/bulk-update",
            json={"issue_ids": ["x"], "status": "resolved"},
            headers=_auth(make_token("c1", "citizen")),
        )
        assert resp.status_code == 403

    def test_admin_cannot_fix_without_token(self, client):
        assert client.post("/api/admin/fix-badges").status_code == 401


# ===========================================================================
# Authority flows
# ===========================================================================
class TestAuthorityRoutes:
    def test_single_status_update(self, client, seeded_engine, officer, category):
        reporter = make_user(seeded_engine, "Reporter")
        issue_id = make_issue(seeded_engine, reporter, category)

        resp = client.post(
            f"/api/authority/issues/{issue_id}/status",
            json={"status": "resolved", "comment": "Cleared"},
            headers=_auth(make_token(officer, "authority")),
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["updated"] == 1
        assert body["failures"] == []

        history = client.get(
            f"/api/authority/issues/{issue_id}/updates",
            headers=_auth(make_token(officer, "authority")),
        ).json()["updates"]
        assert [(h["status_change"], h["comment"]) for h in history] == [("resolved", "Cleared")]

    def test_missing_issue_404(self, client, officer):
        resp = client.post(
            "/api/authority/issues/nope/status",
            json={"status": "resolved"},
            headers=_auth(make_token(officer, "authority")),
        )
        assert resp.status_code == 404

    def test_bad_status_400(self, client, seeded_engine, officer, category):
        issue_id = make_issue(seeded_engine, make_user(seeded_engine), category)
        resp = client.post(
            f"/api/authority/issues/{issue_id}/status",
            json={"status": "closed"},
            headers=_auth(make_token(officer, "authority")),
        )
        assert resp.status_code == 400

    def test_bulk_update(self, client, seeded_engine, officer, category):
        reporter = make_user(seeded_engine, "Reporter")
        ids = [make_issue(seeded_engine, reporter, category, f"Drain {i}") for i in range(3)]

        resp = client.post(
            "/api/authority/bulk-update",
            json={"issue_ids": ids, "status": "in_progress", "comment": "Crew dispatched"},
            headers=_auth(make_token(officer, "authority")),
        )

        assert resp.status_code == 200
        assert resp.json()["updated"] == 3
        with Session(seeded_engine) as session:
            assert len(session.scalars(select(IssueUpdate)).all()) == 3

    def test_bulk_update_empty_ids_400(self, client, officer):
        resp = client.post(
            "/api/authority/bulk-update",
            json={"issue_ids": [], "status": "resolved"},
            headers=_auth(make_token(officer, "authority")),
        )
        assert resp.status_code == 400

    def test_metrics(self, client, seeded_engine, officer, category):
        make_issue(seeded_engine, make_user(seeded_engine), category)
        resp = client.get(
            "/api/authority/metrics", headers=_auth(make_token(officer, "authority")),
        )
        assert resp.status_code == 200
        assert resp.json()["total_issues"] == 1


# ===========================================================================
# Citizen flows
# ===========================================================================
class TestCitizenRoutes:
    def test_report_issue_awards_points(self, client, seeded_engine, category):
        reporter = make_user(seeded_engine, "Reporter")
        resp = client.post(
            "/api/citizen/issues",
            json={
                "title": "Blocked drain",
                "description": "Water pooling after rain",
                "category_id": category,
                "location_lat": 12.9,
                "location_lng": 77.6,
                "location_address": "Lake Road",
                "photos": ["https://img.example.org/drain.jpg"],
            },
            headers=_auth(make_token(reporter, "citizen")),
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["points"] == 10
        assert body["badges_earned"] == 1  # Starter

        badges = client.get(
            "/api/me/badges", headers=_auth(make_token(reporter, "citizen")),
        ).json()["badges"]
        assert [b["name"] for b in badges] == ["Starter"]

    def test_report_without_photo_400(self, client, seeded_engine):
        with Session(seeded_engine) as session:
            category_id = session.scalar(select(IssueCategory.id).limit(1))
        resp = client.post(
            "/api/citizen/issues",
            json={
                "title": "t", "description": "d", "category_id": category_id,
                "location_lat": 1.0, "location_lng": 2.0, "location_address": "a",
            },
            headers=_auth(make_token("c1", "citizen")),
        )
        assert resp.status_code == 400

    def test_notifications_and_mark_read(self, client, seeded_engine, officer, category):
        reporter = make_user(seeded_engine, "Reporter")
        issue_id = make_issue(seeded_engine, reporter, category)
        client.post(
            f"/api/authority/issues/{issue_id}/status",
            json={"status": "in_progress"},
            headers=_auth(make_token(officer, "authority")),
        )
        token = make_token(reporter, "citizen")

        body = client.get("/api/notifications", headers=_auth(token)).json()
        assert body["unread"] == 1
        note_id = body["notifications"][0]["id"]

        other = client.post(
            "/api/notifications/mark-read",
            json={"notification_id": note_id},
            headers=_auth(make_token("someone-else", "citizen")),
        )
        assert other.status_code == 404

        mine = client.post(
            "/api/notifications/mark-read",
            json={"notification_id": note_id},
            headers=_auth(token),
        )
        assert mine.status_code == 200
        assert client.get("/api/notifications", headers=_auth(token)).json()["unread"] == 0

    def test_follow_toggle(self, client, seeded_engine, category):
        issue_id = make_issue(seeded_engine, make_user(seeded_engine, "Reporter"), category)
        token = make_token(make_user(seeded_engine, "Follower"), "citizen")

        first = client.post(f"/api/issues/{issue_id}/follow", headers=_auth(token))
        second = client.post(f"/api/issues/{issue_id}/follow", headers=_auth(token))

        assert first.json() == {"following": True}
        assert second.json() == {"following": False}

    def test_follow_soft_deleted_issue_404(self, client, seeded_engine, category):
        issue_id = make_issue(seeded_engine, make_user(seeded_engine, "Reporter"), category)
        with Session(seeded_engine) as session:
            session.get(Issue, issue_id).deleted_at = datetime.now(UTC)
            session.commit()

        resp = client.post(
            f"/api/issues/{issue_id}/follow",
            headers=_auth(make_token(make_user(seeded_engine, "Follower"), "citizen")),
        )
        assert resp.status_code == 404

    @pytest.mark.parametrize("stored", ["ten", 0, -5])
    def test_leaderboard_bad_size_setting(self, client, seeded_engine, stored):
        settings_service.bulk_upsert(
            seeded_engine, [{"key": "display.leaderboard_size", "value": stored}],
        )
        make_user(seeded_engine, "Low", points=5)
        make_user(seeded_engine, "High", points=80)

        resp = client.get("/api/leaderboard", headers=_auth(make_token("c1", "citizen")))

        assert resp.status_code == 200
        expected = ["High", "Low"] if stored == "ten" else ["High"]
        assert [r["name"] for r in resp.json()["leaderboard"]] == expected

    def test_leaderboard_order(self, client, seeded_engine):
        make_user(seeded_engine, "Low", points=5)
        make_user(seeded_engine, "High", points=80)

        board = client.get(
            "/api/leaderboard", headers=_auth(make_token("c1", "citizen")),
        ).json()["leaderboard"]

        assert [r["name"] for r in board] == ["High", "Low"]


# ===========================================================================
# Admin flows
# ===========================================================================
class TestAdminRoutes:
    def test_fix_badges_dry_run(self, client, seeded_engine):
        make_user(seeded_engine, "Drifted", points=60)

        resp = client.post(
            "/api/admin/fix-badges?dry_run=true",
            headers=_auth(make_token("admin-1", "admin")),
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["dry_run"] is True
        assert body["results"][0]["badges_added"] == 2
        assert body["summary"]["fixed_users"] == 1

    def test_badge_crud(self, client, seeded_engine):
        headers = _auth(make_token("admin-1", "admin"))

        created = client.post(
            "/api/admin/badges",
            json={"name": "Guardian", "points_required": 75, "icon": "🛡️"},
            headers=headers,
        )
        assert created.status_code == 201
        badge_id = created.json()["id"]

        patched = client.patch(
            f"/api/admin/badges/{badge_id}", json={"points_required": 80}, headers=headers,
        )
        assert patched.json()["points_required"] == 80

        assert client.delete(f"/api/admin/badges/{badge_id}", headers=headers).status_code == 200
        assert client.delete(f"/api/admin/badges/{badge_id}", headers=headers).status_code == 404
        with Session(seeded_engine) as session:
            assert session.get(Badge, badge_id) is None

    def test_duplicate_badge_name_400(self, client):
        resp = client.post(
            "/api/admin/badges",
            json={"name": "Starter", "points_required": 5, "icon": "🌟"},
            headers=_auth(make_token("admin-1", "admin")),
        )
        assert resp.status_code == 400

    def test_badge_patch_flags_repair(self, client, seeded_engine):
        headers = _auth(make_token("admin-1", "admin"))
        badge_id = client.get("/api/admin/badges", headers=headers).json()["badges"][0]["id"]

        renamed = client.patch(f"/api/admin/badges/{badge_id}", json={"icon": "⭐"}, headers=headers)
        moved = client.patch(
            f"/api/admin/badges/{badge_id}", json={"points_required": 1}, headers=headers,
        )

        assert renamed.json()["needs_repair"] is False
        assert moved.json()["needs_repair"] is True

    def test_category_crud(self, client, seeded_engine):
        headers = _auth(make_token("admin-1", "admin"))

        created = client.post(
            "/api/admin/categories",
            json={"name": "Streetlights", "department": "Electrical", "default_estimate_hours": 48},
            headers=headers,
        )
        assert created.status_code == 201
        category_id = created.json()["id"]

        patched = client.patch(
            f"/api/admin/categories/{category_id}", json={"department": "Energy"}, headers=headers,
        )
        assert patched.json()["department"] == "Energy"
        dup = client.post(
            "/api/admin/categories",
            json={"name": "Streetlights", "department": "Electrical"},
            headers=headers,
        )
        assert dup.status_code == 400

        names = [c["name"] for c in client.get("/api/admin/categories", headers=headers).json()["categories"]]
        assert "Streetlights" in names
        assert client.delete(f"/api/admin/categories/{category_id}", headers=headers).status_code == 200
        assert client.delete(f"/api/admin/categories/{category_id}", headers=headers).status_code == 404

    def test_category_with_issues_cannot_be_deleted(self, client, seeded_engine, category):
        make_issue(seeded_engine, make_user(seeded_engine, "Reporter"), category)
        resp = client.delete(
            f"/api/admin/categories/{category}", headers=_auth(make_token("admin-1", "admin")),
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cannot delete category with existing issues"

    def test_assigned_authority_gets_next_report(self, client, seeded_engine):
        headers = _auth(make_token("admin-1", "admin"))
        category_id = make_category(seeded_engine, "Parks")
        officer = make_user(seeded_engine, "Ranger", role=UserRole.AUTHORITY)

        assigned = client.post(
            "/api/admin/authorities",
            json={"user_id": officer, "category_id": category_id},
            headers=headers,
        )
        assert assigned.status_code == 201
        again = client.post(
            "/api/admin/authorities",
            json={"user_id": officer, "category_id": category_id},
            headers=headers,
        )
        assert again.status_code == 400

        reporter = make_user(seeded_engine, "Reporter")
        client.post(
            "/api/citizen/issues",
            json={
                "title": "Broken swing", "description": "Chain snapped",
                "category_id": category_id, "location_lat": 1.0, "location_lng": 2.0,
                "location_address": "Park Lane", "photos": ["https://img.example.org/swing.jpg"],
            },
            headers=_auth(make_token(reporter, "citizen")),
        )
        with Session(seeded_engine) as session:
            assert session.scalar(select(Issue.assigned_to_authority_id)) == officer

        listing = client.get(
            f"/api/admin/authorities?category_id={category_id}", headers=headers,
        ).json()["authorities"]
        assert [(a["user_name"], a["category_name"]) for a in listing] == [("Ranger", "Parks")]
        authority_id = assigned.json()["id"]
        assert client.delete(f"/api/admin/authorities/{authority_id}", headers=headers).status_code == 200
        assert client.delete(f"/api/admin/authorities/{authority_id}", headers=headers).status_code == 404

    def test_reset_points(self, client, seeded_engine):
        user_id = make_user(seeded_engine, points=120)
        resp = client.post(
            f"/api/admin/users/{user_id}/reset-points",
            headers=_auth(make_token("admin-1", "admin")),
        )
        assert resp.status_code == 200
        assert resp.json()["old_points"] == 120

    def test_settings_roundtrip(self, client):
        headers = _auth(make_token("admin-1", "admin"))

        put = client.put(
            "/api/admin/settings", json=[{"key": "points.post_issue", "value": 12}],
            headers=headers,
        )
        assert put.json() == {"updated": 1}

        settings = {
            s["key"]: s["value"]
            for s in client.get("/api/admin/settings", headers=headers).json()["settings"]
        }
        assert settings["points.post_issue"] == 12

    def test_settings_handler_name(self):
        from civicfix.api.routes import admin

        names = {route.name for route in admin.router.routes}
        assert "list_settings" in names
        assert "get_all_settings" not in names

    def test_logs_reject_bad_level(self, client):
        resp = client.get(
            "/api/admin/logs?level=LOUD", headers=_auth(make_token("admin-1", "admin")),
        )
        assert resp.status_code == 400
