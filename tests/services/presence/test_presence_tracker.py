"""Heartbeats and online user counting."""

import re

import pytest

from moonstore.constants import MS_PER_MINUTE
from moonstore.core.exceptions import ValidationError
from moonstore.services.presence import ClientInfo, PresenceTracker, client_info_from_headers, generate_session_id
from moonstore.services.storage import StorageService
from moonstore.services.storage.models import UserMeta

T = 1_700_000_000_000


@pytest.fixture
def tracker(storage: StorageService) -> PresenceTracker:
    return PresenceTracker(storage)


async def test_heartbeat_upserts_session(tracker: PresenceTracker, storage: StorageService) -> None:
    info = ClientInfo(ip_address="10.0.0.1", user_agent="pytest")
    session = await tracker.record_heartbeat("bob", "s1", info, now=T)

    assert session.last_active_at == T
    assert await storage.get_user_session("s1") == session

    await tracker.record_heartbeat("bob", "s1", now=T + 1000)
    stored = await storage.get_user_session("s1")
    assert stored is not None
    assert stored.last_active_at == T + 1000
    assert stored.ip_address is None


async def test_heartbeat_touches_user_meta(tracker: PresenceTracker, storage: StorageService) -> None:
    await storage.set_user_meta("bob", UserMeta(created_at=T - 5000, last_active_at=T - 5000))

    await tracker.record_heartbeat("bob", "s1", now=T)

    meta = await storage.get_user_meta("bob")
    assert meta is not None
    assert meta.last_active_at == T

    # TEST: No meta row is created for users without one
    await tracker.record_heartbeat("alice", "s2", now=T)
    assert await storage.get_user_meta("alice") is None


async def test_window_boundary_is_inclusive(tracker: PresenceTracker) -> None:
    await tracker.record_heartbeat("edge", "s1", now=T - 30 * MS_PER_MINUTE)
    await tracker.record_heartbeat("late", "s2", now=T - 30 * MS_PER_MINUTE - 1)
    await tracker.record_heartbeat("now", "s3", now=T)

    assert await tracker.get_online_users(30, now=T) == ["edge", "now"]


async def test_sessions_of_one_user_count_once(tracker: PresenceTracker) -> None:
    await tracker.record_heartbeat("bob", "phone", now=T - 1000)
    await tracker.record_heartbeat("bob", "laptop", now=T - 2000)
    await tracker.record_heartbeat("alice", "tv", now=T)

    assert await tracker.count_online_users(now=T) == 2  # noqa: PLR2004
    assert await tracker.get_online_users(now=T) == ["alice", "bob"]


async def test_heartbeats_after_now_are_ignored(tracker: PresenceTracker) -> None:
    await tracker.record_heartbeat("future", "s1", now=T + 1)
    assert await tracker.get_online_users(now=T) == []


async def test_stale_entries_are_pruned(tracker: PresenceTracker, storage: StorageService) -> None:
    await tracker.record_heartbeat("stale", "old", now=T - 60 * MS_PER_MINUTE)
    await tracker.record_heartbeat("fresh", "new", now=T)

    assert await tracker.get_online_users(now=T) == ["fresh"]
    assert await storage.backend.zrange_by_score("presence-index", float("-inf"), float("inf")) == ["new"]


async def test_end_session(tracker: PresenceTracker) -> None:
    await tracker.record_heartbeat("bob", "s1", now=T)
    await tracker.end_session("s1")

    assert await tracker.count_online_users(now=T) == 0


async def test_invalid_input(tracker: PresenceTracker) -> None:
    with pytest.raises(ValidationError):
        await tracker.get_online_users(0, now=T)
    with pytest.raises(ValidationError):
        await tracker.record_heartbeat("", "s1", now=T)
    with pytest.raises(ValidationError):
        await tracker.record_heartbeat("bob", " ", now=T)


def test_generate_session_id() -> None:
    session_id = generate_session_id(now=T)
    assert re.fullmatch(rf"{T}-[0-9a-z]+", session_id)

    # TEST: Random part differs between calls
    assert len({generate_session_id(now=T) for _ in range(20)}) == 20  # noqa: PLR2004


@pytest.mark.parametrize(
    ("headers", "expected_ip"),
    [
        ({"X-Forwarded-For": "203.0.113.7, 10.0.0.1", "X-Real-IP": "10.0.0.9"}, "203.0.113.7"),
        ({"x-forwarded-for": " 203.0.113.8 "}, "203.0.113.8"),
        ({"X-Forwarded-For": " ", "X-Real-IP": "10.0.0.9"}, "10.0.0.9"),
        ({"X-Real-IP": "10.0.0.9"}, "10.0.0.9"),
        ({}, None),
    ],
)
def test_client_info_from_headers(headers: dict[str, str], expected_ip: str | None) -> None:
    info = client_info_from_headers({**headers, "User-Agent": "pytest/8"})
    assert info.ip_address == expected_ip
    assert info.user_agent == "pytest/8"


def test_client_info_without_user_agent() -> None:
    assert client_info_from_headers({}).user_agent is None
