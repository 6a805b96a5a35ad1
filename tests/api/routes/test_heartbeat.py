from http import HTTPStatus

from fastapi.testclient import TestClient

from moonstore.constants import API_V1_STR, SESSION_COOKIE_NAME
from moonstore.instances.config import settings
from moonstore.services.storage import StorageService
from tests.test_utils.auth import auth_headers


def test_heartbeat_issues_session(client: TestClient) -> None:
    r = client.post(
        f"{API_V1_STR}/user/heartbeat",
        headers={**auth_headers("bob"), "X-Forwarded-For": "203.0.113.7, 10.0.0.1", "User-Agent": "pytest"},
    )
    assert r.status_code == HTTPStatus.OK

    session_id = r.json()["session_id"]
    assert r.cookies[SESSION_COOKIE_NAME] == session_id


async def test_heartbeat_reuses_cookie(client: TestClient, global_storage: StorageService) -> None:
    r = client.post(
        f"{API_V1_STR}/user/heartbeat",
        headers={
            **auth_headers("bob"),
            "X-Real-IP": "10.0.0.9",
            "Cookie": f"{SESSION_COOKIE_NAME}=1700000000000-abc",
        },
    )
    assert r.status_code == HTTPStatus.OK
    assert r.json()["session_id"] == "1700000000000-abc"

    session = await global_storage.get_user_session("1700000000000-abc")
    assert session is not None
    assert session.username == "bob"
    assert session.ip_address == "10.0.0.9"


def test_heartbeat_requires_user(client: TestClient) -> None:
    r = client.post(f"{API_V1_STR}/user/heartbeat")
    assert r.status_code == HTTPStatus.UNAUTHORIZED


def test_online_users(client: TestClient) -> None:
    r = client.get(f"{API_V1_STR}/online-users")
    assert r.json() == {"count": 0, "window_minutes": settings.reconcile.presence_window_minutes}

    for username in ("bob", "bob", "alice"):
        client.cookies.clear()
        r = client.post(f"{API_V1_STR}/user/heartbeat", headers=auth_headers(username))
        assert r.status_code == HTTPStatus.OK

    r = client.get(f"{API_V1_STR}/online-users")
    assert r.json()["count"] == 2  # noqa: PLR2004 Two sessions of bob count once
