import logging

import pytest

from storefront_sync.utils.logging import warn_once


def test_warn_once_rate_limits_per_code(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("storefront_sync.test")
    with caplog.at_level(logging.DEBUG, logger="storefront_sync.test"):
        assert warn_once(logger, "network_error", "GET %s failed", "/cart") is True
        assert warn_once(logger, "network_error", "GET %s failed", "/cart") is False
        assert warn_once(logger, "timeout", "GET %s timed out", "/cart") is True
        assert warn_once(logger, "network_error", "again", window=0.0) is True

    levels = [record.levelno for record in caplog.records]
    assert levels == [logging.WARNING, logging.DEBUG, logging.WARNING, logging.WARNING]
    assert caplog.records[0].getMessage() == "[network_error] GET /cart failed"
