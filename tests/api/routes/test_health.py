from http import HTTPStatus

from fastapi.testclient import TestClient

from moonstore.constants import API_V1_STR
from moonstore.core.exceptions import BackendUnavailable
from moonstore.services.storage import StorageService
from moonstore.version import __version__


def test_health(client: TestClient) -> None:
    r = client.get(f"{API_V1_STR}/health")
    assert r.status_code == HTTPStatus.OK

    health = r.json()
    assert health["version"] == __version__
    assert health["storage"] == {"backend": "memory", "reachable": True}


def test_health_storage_down(client: TestClient, global_storage: StorageService, mocker) -> None:
    mocker.patch.object(global_storage, "ping", side_effect=BackendUnavailable("down"))

    r = client.get(f"{API_V1_STR}/health")
    assert r.status_code == HTTPStatus.OK
    assert r.json()["storage"]["reachable"] is False
