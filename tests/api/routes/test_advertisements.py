from http import HTTPStatus

from fastapi.testclient import TestClient

from moonstore.constants import API_V1_STR
from moonstore.core.exceptions import BackendUnavailable
from moonstore.services.storage import StorageService
from moonstore.services.storage.models import Advertisement
from moonstore.utils.helpers import now_ms

DAY_MS = 24 * 60 * 60 * 1000


async def test_active_advertisements(client: TestClient, global_storage: StorageService) -> None:
    now = now_ms()
    for ad_id, position, priority, enabled in (
        ("top", "banner", 5, True),
        ("side", "sidebar", 9, True),
        ("off", "banner", 10, False),
    ):
        await global_storage.create_advertisement(
            Advertisement(
                id=ad_id,
                position=position,
                type="image",
                title=ad_id,
                material_url=f"https://ads.example.com/{ad_id}.png",
                start_date=now - DAY_MS,
                end_date=now + DAY_MS,
                priority=priority,
                enabled=enabled,
            )
        )

    r = client.get(f"{API_V1_STR}/advertisements")
    assert r.status_code == HTTPStatus.OK
    ads = r.json()
    assert [ad["id"] for ad in ads] == ["side", "top"]
    # TEST: Served camelCase
    assert ads[0]["materialUrl"] == "https://ads.example.com/side.png"

    r = client.get(f"{API_V1_STR}/advertisements", params={"position": "banner"})
    assert [ad["id"] for ad in r.json()] == ["top"]


def test_storage_unavailable(client: TestClient, global_storage: StorageService, mocker) -> None:
    mocker.patch.object(
        global_storage,
        "get_active_advertisements",
        side_effect=BackendUnavailable("Storage backend unavailable during get", last_error=ConnectionError()),
    )

    r = client.get(f"{API_V1_STR}/advertisements")
    assert r.status_code == HTTPStatus.SERVICE_UNAVAILABLE
    assert r.json()["message"] == "Storage is temporarily unavailable, try again later"
