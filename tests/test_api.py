from datetime import datetime, timedelta, timezone

import pytest

from quest_checkin.container import build_memory_container
from quest_checkin.database.bootstrap import ensure_demo_profiles
from quest_checkin.main import create_app


@pytest.fixture()
def container():
    c = build_memory_container()
    ensure_demo_profiles(c.profiles_repo)
    return c


@pytest.fixture()
def client(monkeypatch, container):
    monkeypatch.setenv("APP_ENV", "testing")
    app = create_app(container=container)
    return app.test_client()


def _login(client, user_id: str, role: str = "user") -> None:
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["role"] = role


def _iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


def _open_session(client, *, selection=None, start_offset=timedelta(minutes=-5)):
    start = datetime.now(timezone.utc) + start_offset
    resp = client.post(
        "/api/admin/sessions",
        json={
            "title": "API quest",
            "start_at": _iso(start),
            "end_at": _iso(start + timedelta(hours=1)),
            "exp_reward": 10,
            "exp_penalty": 5,
            "selection": selection or {"mode": "explicit", "user_ids": ["user-alice", "user-bob"]},
        },
    )
    return resp


def test_requires_login(client):
    resp = client.get("/api/checkin/status")

    assert resp.status_code == 401
    assert resp.get_json()["error"] == "unauthenticated"


def test_admin_routes_require_admin_role(client):
    _login(client, "user-alice")

    resp = client.get("/api/admin/sessions")

    assert resp.status_code == 403
    assert resp.get_json()["error"] == "forbidden"


def test_create_session_and_check_in_flow(client, container):
    _login(client, "admin-demo", "admin")
    resp = _open_session(client)
    assert resp.status_code == 201
    token = resp.get_json()["data"]["token"]

    _login(client, "user-alice")
    status = client.get("/api/checkin/status").get_json()["data"]
    assert status["current_session"]["title"] == "API quest"
    assert "token" not in status["current_session"]

    resp = client.post("/api/checkin", json={"token": token})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["exp_earned"] == 10
    assert container.profiles_repo.get_by_id("user-alice").exp == 130

    resp = client.post("/api/checkin", json={"token": token})
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "already_checked_in"

    history = client.get("/api/checkin/history?limit=5").get_json()["data"]
    assert len(history) == 1


def test_invalid_token_is_rejected(client):
    _login(client, "user-bob")

    resp = client.post("/api/checkin", json={"token": "CHECKIN_qr_1_abc"})

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "invalid_token"


def test_create_session_validation_errors(client):
    _login(client, "admin-demo", "admin")

    resp = client.post("/api/admin/sessions", json={"title": "No times"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation_error"

    resp = _open_session(client, selection={"mode": "explicit", "user_ids": []})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "invalid_selection"


def test_preview_counts_selected_users(client):
    _login(client, "admin-demo", "admin")

    resp = client.post("/api/admin/sessions/preview", json={"mode": "filter", "role": "user", "min_level": 2})

    data = resp.get_json()["data"]
    assert resp.status_code == 200
    assert data["total_users"] == 1
    assert data["users"][0]["user_id"] == "user-alice"


def test_penalties_and_stats_endpoints(client, container):
    _login(client, "admin-demo", "admin")
    token = _open_session(client).get_json()["data"]["token"]
    session = container.sessions_repo.get_active_by_token(token)

    resp = client.post(f"/api/admin/sessions/{session.session_id}/penalties")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "session_still_active"

    stats = client.get(f"/api/admin/sessions/{session.session_id}/stats").get_json()["data"]
    assert stats == {"total_attendees": 0, "total_users": 2, "attendance_rate": 0.0, "penalties_applied": 0}

    resp = client.post(f"/api/admin/sessions/{session.session_id}/deactivate")
    assert resp.status_code == 200
    assert container.sessions_repo.get_active_by_token(token) is None

    resp = client.get("/api/admin/sessions/missing")
    assert resp.status_code == 404


def test_sweep_endpoint_reports_nothing_when_no_session_ended(client):
    _login(client, "admin-demo", "admin")
    _open_session(client)

    resp = client.post("/api/admin/penalties/sweep")

    assert resp.status_code == 200
    assert resp.get_json()["data"] == {"penalized_by_session": {}, "failed_sessions": [], "total_penalized": 0}


def test_qr_png_endpoint(client, container):
    _login(client, "admin-demo", "admin")
    token = _open_session(client).get_json()["data"]["token"]
    session = container.sessions_repo.get_active_by_token(token)

    resp = client.get(f"/api/admin/sessions/{session.session_id}/qr.png")

    assert resp.status_code == 200
    assert resp.mimetype == "image/png"
    assert resp.data.startswith(b"\x89PNG")


def test_image_check_in_requires_a_file(client):
    _login(client, "user-alice")

    resp = client.post("/api/checkin/image", data={})

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "missing_image"


def test_preview_rejects_non_object_body(client):
    _login(client, "admin-demo", "admin")

    resp = client.post("/api/admin/sessions/preview", json=["all"])

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "invalid_selection"


def test_create_session_rejects_malformed_fields(client):
    _login(client, "admin-demo", "admin")

    resp = _open_session(client, selection="all")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "invalid_selection"

    resp = _open_session(client, selection={"mode": "explicit", "user_ids": [None, "user-bob"]})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "invalid_selection"

    start = datetime.now(timezone.utc)
    resp = client.post(
        "/api/admin/sessions",
        json={
            "title": 5,
            "start_at": _iso(start),
            "end_at": _iso(start + timedelta(hours=1)),
            "selection": {"mode": "all"},
        },
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation_error"


def test_admin_today_check_in_count(client, container):
    _login(client, "admin-demo", "admin")
    token = _open_session(client).get_json()["data"]["token"]
    _login(client, "user-bob")
    client.post("/api/checkin", json={"token": token})
    _login(client, "user-alice")
    client.post("/api/checkin", json={"token": token})

    resp = client.get("/api/admin/checkins/today")
    assert resp.status_code == 403

    _login(client, "admin-demo", "admin")
    resp = client.get("/api/admin/checkins/today")
    assert resp.status_code == 200
    assert resp.get_json()["data"] == {"today_check_ins": 2}
