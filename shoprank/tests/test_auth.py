from __future__ import annotations

from fastapi.testclient import TestClient

from shoprank.app import app

client = TestClient(app)


def _login_user(c):
    c.post("/auth/login", json={"username": "user", "password": "user123"})


def _login_admin(c):
    c.post("/auth/login", json={"username": "admin", "password": "admin123"})


# ── Login / Logout ───────────────────────────────────────────────────────


def test_login_success_user():
    resp = client.post("/auth/login", json={"username": "user", "password": "user123"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["user"]["username"] == "user"
    assert body["user"]["role"] == "user"
    assert body["user"]["user_id"] == "u-demo"


def test_login_success_admin():
    resp = client.post("/auth/login", json={"username": "admin", "password": "admin123"})
    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "admin"


def test_login_wrong_password():
    resp = client.post("/auth/login", json={"username": "user", "password": "wrong"})
    assert resp.status_code == 401


def test_login_unknown_user():
    resp = client.post("/auth/login", json={"username": "nobody", "password": "x"})
    assert resp.status_code == 401


def test_auth_me_when_logged_in():
    _login_user(client)
    resp = client.get("/auth/me")
    assert resp.status_code == 200
    assert resp.json()["user_id"] == "u-demo"


def test_auth_me_not_logged_in():
    c = TestClient(app)  # fresh client, no session
    resp = c.get("/auth/me")
    assert resp.status_code == 401


def test_logout():
    _login_user(client)
    resp = client.post("/auth/logout")
    assert resp.status_code == 200
    assert resp.json()["status"] == "logged_out"
    # Session should be cleared
    resp = client.get("/auth/me")
    assert resp.status_code == 401


# ── Route protection ─────────────────────────────────────────────────────


def test_ranking_requires_login():
    c = TestClient(app)
    assert c.post("/rank/shops", json={}).status_code == 401
    assert c.post("/rank/offers", json={}).status_code == 401
    assert c.post("/rank/ab-test", json={"entity_type": "shop"}).status_code == 401
    assert c.get("/rank/metrics").status_code == 401


def test_recommendations_requires_login():
    c = TestClient(app)
    resp = c.post("/recommendations", json={})
    assert resp.status_code == 401


def test_interactions_requires_login():
    c = TestClient(app)
    resp = c.post("/interactions", json={"behavior_type": "view_shop"})
    assert resp.status_code == 401


def test_analytics_requires_admin():
    _login_user(client)
    resp = client.get("/analytics")
    assert resp.status_code == 403


def test_analytics_allowed_for_admin():
    _login_admin(client)
    resp = client.get("/analytics")
    assert resp.status_code == 200


def test_ab_test_results_requires_admin():
    c = TestClient(app)
    _login_user(c)
    resp = c.get("/ab-test/results")
    assert resp.status_code == 403


def test_retrain_requires_admin():
    c = TestClient(app)
    _login_user(c)
    assert c.post("/admin/retrain").status_code == 403
    assert TestClient(app).post("/admin/retrain").status_code == 401


# ── Public endpoints stay public ─────────────────────────────────────────


def test_health_is_public():
    c = TestClient(app)
    assert c.get("/health").status_code == 200


def test_metadata_is_public():
    c = TestClient(app)
    resp = c.get("/metadata")
    assert resp.status_code == 200
    body = resp.json()
    assert "Food & Dining" in body["categories"]
    assert body["entity_types"] == ["shop", "offer"]
