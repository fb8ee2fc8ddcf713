"""
tests/test_api_routes.py — FastAPI Route Integration Tests
===========================================================
Public and admin routes through the FastAPI TestClient, backed by the
in-memory SQLite engine and a real ConfigCache via dependency overrides.

The lifespan is not entered, so no background refresh job runs.
"""

from __future__ import annotations

import jwt
import pytest
from conftest import add_achievement, add_article, make_admin_token, make_user
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from agora.api.deps import JWT_ALGORITHM, JWT_SECRET, get_cache, get_engine
from agora.api.main import app
from agora.database.models import User


@pytest.fixture
def client(db_engine, cache):
    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_cache] = lambda: cache
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def non_admin_token():
    return jwt.encode(
        {"sub": "67890", "username": "RegularUser", "is_admin": False},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards — admin endpoints reject unauthenticated/non-admin callers
# ===========================================================================
class TestAdminAuthGuards:
    ADMIN_GET_ENDPOINTS = [
        "/api/admin/achievements",
        "/api/admin/analytics",
        "/api/admin/settings",
        "/api/admin/audit",
    ]

    ADMIN_POST_ENDPOINTS = [
        "/api/admin/leaderboard/overall/generate",
        "/api/admin/users/1/reset",
        "/api/admin/users/1/achievements/1",
    ]

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_get_rejects_no_auth(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_post_rejects_no_auth(self, client, endpoint):
        assert client.post(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_get_rejects_invalid_token(self, client, endpoint):
        resp = client.get(endpoint, headers={"Authorization": "Bearer invalid"})
        assert resp.status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_get_rejects_non_admin(self, client, non_admin_token, endpoint):
        resp = client.get(endpoint, headers=_auth(non_admin_token))
        assert resp.status_code == 403

    def test_rejects_non_numeric_subject(self, client):
        token = make_admin_token(sub="not-a-number")
        assert client.get("/api/admin/settings", headers=_auth(token)).status_code == 401


# ===========================================================================
# Public endpoints
# ===========================================================================
class TestPublicLeaderboard:
    def test_leaderboard_generated_on_first_read(self, client, db_engine):
        make_user(db_engine, "Ann", points=120)
        make_user(db_engine, "Ben", points=300)

        resp = client.get("/api/leaderboard/overall")

        assert resp.status_code == 200
        body = resp.json()
        assert body["scope"] == "overall"
        assert body["period"] == "all_time"
        assert body["total_participants"] == 2
        assert [(e["rank"], e["name"]) for e in body["entries"]] == [(1, "Ben"), (2, "Ann")]

    def test_limit(self, client, db_engine):
        for i in range(5):
            make_user(db_engine, f"U{i}", points=i)
        body = client.get("/api/leaderboard/overall", params={"limit": 2}).json()
        assert len(body["entries"]) == 2
        assert body["total_participants"] == 5

    def test_unknown_scope_is_422(self, client):
        resp = client.get("/api/leaderboard/karma")
        assert resp.status_code == 422
        assert "scope" in resp.json()["detail"]

    def test_unknown_period_is_422(self, client):
        resp = client.get("/api/leaderboard/overall", params={"period": "hourly"})
        assert resp.status_code == 422

    def test_user_position(self, client, db_engine):
        ids = [make_user(db_engine, f"U{i}", points=100 * (4 - i)) for i in range(4)]
        body = client.get(f"/api/leaderboard/overall/users/{ids[1]}").json()

        assert body["position"]["rank"] == 2
        assert body["position"]["total_participants"] == 4
        assert [n["rank"] for n in body["neighbors"]] == [1, 2, 3, 4]

    def test_user_position_off_board(self, client, db_engine):
        uid = make_user(db_engine)
        body = client.get(f"/api/leaderboard/articles/users/{uid}").json()
        assert body["position"] is None

    def test_user_position_unknown_user_is_404(self, client):
        assert client.get("/api/leaderboard/overall/users/4242").status_code == 404


class TestPublicUsersAndCatalogue:
    def test_user_gamification(self, client, db_engine):
        uid = make_user(db_engine, points=150)
        body = client.get(f"/api/users/{uid}/gamification").json()
        assert body["points"] == 150
        assert body["level"] == 2
        assert body["points_to_next_level"] == 50

    def test_unknown_user_is_404(self, client):
        resp = client.get("/api/users/999/gamification")
        assert resp.status_code == 404
        assert "999" in resp.json()["detail"]

    def test_achievement_catalogue_hides_hidden(self, client, db_engine):
        add_achievement(db_engine, "Visible", "forum_posts", 1, points=5, rarity="rare")
        add_achievement(db_engine, "Secret", "forum_posts", 1, is_hidden=True)

        body = client.get("/api/achievements").json()

        assert [a["name"] for a in body] == ["Visible"]
        assert body[0]["criteria"] == {
            "metric_type": "forum_posts", "threshold": 1, "timeframe": "all_time",
        }
        assert body[0]["rarity_emoji"]

    def test_invalid_filter_is_422(self, client):
        assert client.get("/api/achievements", params={"category": "bravery"}).status_code == 422

    def test_categories_and_rarities(self, client, db_engine):
        add_achievement(db_engine, "A", "custom", 1, category="leadership", rarity="legendary")
        assert client.get("/api/achievements/categories").json() == ["leadership"]
        assert [r["rarity"] for r in client.get("/api/achievements/rarities").json()] == [
            "legendary",
        ]


# ===========================================================================
# Admin flows
# ===========================================================================
class TestAdminFlows:
    def test_bonus_award(self, client, db_engine, admin_token):
        uid = make_user(db_engine, points=80)
        resp = client.post(
            f"/api/admin/users/{uid}/bonus",
            json={"amount": 40, "reason": "Conference talk"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json() == {
            "points_awarded": 40, "total_points": 120, "level": 2, "leveled_up": True,
        }

    def test_bonus_rejects_negative_amount(self, client, db_engine, admin_token):
        uid = make_user(db_engine)
        resp = client.post(
            f"/api/admin/users/{uid}/bonus",
            json={"amount": -5, "reason": "nope"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 422

    def test_bonus_unknown_user_is_404(self, client, admin_token):
        resp = client.post(
            "/api/admin/users/5555/bonus",
            json={"amount": 5, "reason": "gift"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 404

    def test_reset(self, client, db_engine, admin_token):
        uid = make_user(db_engine, points=700)
        resp = client.post(f"/api/admin/users/{uid}/reset", headers=_auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["points"] == 0
        with Session(db_engine) as session:
            assert session.get(User, uid).level == 1

    def test_grant_then_conflict(self, client, db_engine, admin_token):
        uid = make_user(db_engine)
        aid = add_achievement(db_engine, "Mentor", "custom", 1, points=30)
        url = f"/api/admin/users/{uid}/achievements/{aid}"

        first = client.post(url, headers=_auth(admin_token))
        second = client.post(url, headers=_auth(admin_token))

        assert first.status_code == 200
        assert first.json()["achievement"]["name"] == "Mentor"
        assert second.status_code == 409

    def test_create_achievement(self, client, cache, admin_token):
        resp = client.post(
            "/api/admin/achievements",
            json={
                "name": "Event Host",
                "description": "Organize 3 events",
                "category": "leadership",
                "metric_type": "event_creation",
                "threshold": 3,
                "points": 60,
                "rarity": "epic",
            },
            headers=_auth(admin_token),
        )
        assert resp.status_code == 201
        assert resp.json()["name"] == "Event Host"
        assert "Event Host" in {a.name for a in cache.get_active_achievements()}

    def test_create_achievement_bad_metric_is_422(self, client, admin_token):
        resp = client.post(
            "/api/admin/achievements",
            json={"name": "X", "category": "leadership", "metric_type": "karma"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 422

    def test_admin_catalogue_includes_hidden(self, client, db_engine, admin_token):
        add_achievement(db_engine, "Secret", "custom", 1, is_hidden=True)
        body = client.get("/api/admin/achievements", headers=_auth(admin_token)).json()
        assert [a["name"] for a in body] == ["Secret"]

    def test_generate_leaderboard(self, client, db_engine, admin_token):
        make_user(db_engine, points=5)
        uid = make_user(db_engine, "Writer")
        add_article(db_engine, uid)

        resp = client.post(
            "/api/admin/leaderboard/articles/generate",
            params={"period": "all_time"},
            headers=_auth(admin_token),
        )

        assert resp.status_code == 200
        assert [e["user_id"] for e in resp.json()["entries"]] == [uid]
        audit = client.get(
            "/api/admin/audit", params={"target_table": "leaderboards"},
            headers=_auth(admin_token),
        ).json()
        assert audit[0]["action_type"] == "LEADERBOARD_GENERATE"
        assert audit[0]["actor_id"] == 99999

    def test_settings_round_trip(self, client, cache, admin_token):
        resp = client.put(
            "/api/admin/settings",
            json={"settings": [{"key": "points.forum_post", "value": 9}]},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json() == {"updated": 1}
        assert cache.get_int("points.forum_post") == 9

        listed = client.get("/api/admin/settings", headers=_auth(admin_token)).json()
        assert {s["key"]: s["value"] for s in listed}["points.forum_post"] == 9

    def test_analytics(self, client, db_engine, admin_token):
        make_user(db_engine, points=250)
        body = client.get("/api/admin/analytics", headers=_auth(admin_token)).json()
        assert body["total_users"] == 1
        assert body["level_distribution"] == {"3": 1}

    def test_audit_log_newest_first(self, client, db_engine, admin_token):
        uid = make_user(db_engine)
        for amount in (1, 2):
            client.post(
                f"/api/admin/users/{uid}/bonus",
                json={"amount": amount, "reason": "thanks"},
                headers=_auth(admin_token),
            )
        audit = client.get("/api/admin/audit", headers=_auth(admin_token)).json()
        assert [a["after"]["points"] for a in audit] == [3, 1]
        with Session(db_engine) as session:
            assert session.scalar(select(User.points).where(User.id == uid)) == 3
