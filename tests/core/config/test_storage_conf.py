import logging

import pytest

from moonstore.constants import DEFAULT_API_LOG_CAP, DEFAULT_RETRY_BASE_DELAY, DEFAULT_SESSION_TTL_SECONDS
from moonstore.core.config import StorageConf


def test_storage_conf_defaults(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        conf = StorageConf()

    assert caplog.records == []
    assert conf.backend == "memory"
    assert not conf.login_stats_atomic


def test_non_positive_values_fall_back(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        conf = StorageConf(session_ttl_seconds=0, api_log_cap=-5)

    assert conf.session_ttl_seconds == DEFAULT_SESSION_TTL_SECONDS
    assert conf.api_log_cap == DEFAULT_API_LOG_CAP
    assert len(caplog.records) == 2  # noqa: PLR2004 One warning per field
    assert "session_ttl_seconds" in caplog.records[0].message


def test_negative_retry_delay(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        conf = StorageConf(retry_base_delay=-1)

    assert conf.retry_base_delay == DEFAULT_RETRY_BASE_DELAY
    assert len(caplog.records) == 1

    # TEST: Zero disables the backoff, which is allowed
    assert StorageConf(retry_base_delay=0).retry_base_delay == 0
