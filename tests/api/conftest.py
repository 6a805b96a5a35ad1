import pytest
from fastapi.testclient import TestClient

from moonstore.main import app
from moonstore.services.storage import StorageService


@pytest.fixture
def client(global_storage: StorageService) -> TestClient:
    """Client against the app with the test storage installed, the lifespan is not run."""
    return TestClient(app)
