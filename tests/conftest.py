"""Shared fixtures, every test gets its own instance directory and an in-memory backend."""

import os
import tempfile
from pathlib import Path

# Must be set before anything from moonstore is imported
os.environ["MOONSTORE_TESTING"] = "1"
os.environ.setdefault("MOONSTORE_INSTANCE_DIR", tempfile.mkdtemp(prefix="moonstore-tests-"))

import pytest  # noqa: E402

from moonstore.backends import MemoryBackend  # noqa: E402
from moonstore.instances.storage import set_storage  # noqa: E402
from moonstore.services.login_stats import LoginStatsStore  # noqa: E402
from moonstore.services.storage import StorageService  # noqa: E402

from tests.test_utils.clock import FakeClock  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(clock: FakeClock) -> MemoryBackend:
    return MemoryBackend(clock=clock)


@pytest.fixture
def storage(backend: MemoryBackend) -> StorageService:
    """Storage service over a fresh in-memory backend, retries don't sleep."""
    return StorageService(backend, retry_base_delay=0)


@pytest.fixture
def login_stats(storage: StorageService) -> LoginStatsStore:
    return LoginStatsStore(storage)


@pytest.fixture
def global_storage(storage: StorageService):  # noqa: ANN201
    """Install the test storage service as the global instance for API tests."""
    set_storage(storage)
    yield storage
    set_storage(None)


@pytest.fixture
def instance_path(tmp_path: Path) -> Path:
    path = tmp_path / "instance"
    path.mkdir()
    return path
