"""
Tests for the structlog setup.
"""

import logging

from eventhub.core.config import Settings
from eventhub.core.logging import (
    NOTIFICATION_LOGGER,
    SCHEDULER_LOGGER,
    add_service_context,
    setup_logging,
)


def test_service_context_is_stamped_without_overriding():
    settings = Settings(APP_NAME="EventHub", APP_VERSION="9.9.9", ENVIRONMENT="staging")
    processor = add_service_context(settings)

    event = processor(None, "info", {"event": "booking_created", "env": "override"})

    assert event["service"] == "EventHub"
    assert event["version"] == "9.9.9"
    assert event["env"] == "override"


def test_background_components_get_their_own_level():
    setup_logging(Settings(LOG_LEVEL="INFO", SCHEDULER_LOG_LEVEL="warning", SQL_LOG_LEVEL="ERROR"))

    assert logging.getLogger().level == logging.INFO
    assert logging.getLogger(SCHEDULER_LOGGER).level == logging.WARNING
    assert logging.getLogger(NOTIFICATION_LOGGER).level == logging.INFO
    assert logging.getLogger("sqlalchemy.engine").level == logging.ERROR
    assert len(logging.getLogger().handlers) == 1
