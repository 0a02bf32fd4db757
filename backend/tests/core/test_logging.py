"""
Tests for structured logging configuration.
"""

import logging

import structlog
from structlog.contextvars import get_contextvars

from apps.core.logging import (
    _add_trace_id,
    _convert_duration_to_nanoseconds,
    _mask_emails,
    bind_contextvars,
    clear_contextvars,
    configure_logging,
    get_logger,
    mask_email,
)


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_installs_single_root_handler(self):
        configure_logging(json_format=True, log_level="INFO")
        configure_logging(json_format=True, log_level="INFO")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.INFO

    def test_console_format_and_level(self):
        configure_logging(json_format=False, log_level="debug")

        assert logging.getLogger().level == logging.DEBUG
        assert structlog.get_config()["wrapper_class"] is structlog.stdlib.BoundLogger

    def test_unknown_level_falls_back_to_info(self):
        configure_logging(json_format=True, log_level="LOUD")

        assert logging.getLogger().level == logging.INFO


class TestProcessors:
    """Tests for the custom structlog processors."""

    def test_correlation_id_becomes_trace_id(self):
        event = _add_trace_id(None, "info", {"event": "x", "correlation_id": 123})

        assert event == {"event": "x", "trace_id": "123"}

    def test_duration_ms_becomes_nanoseconds(self):
        event = _convert_duration_to_nanoseconds(None, "info", {"duration_ms": 1.5})

        assert event == {"duration": 1_500_000}

    def test_email_fields_are_masked(self):
        event = _mask_emails(
            None,
            "info",
            {
                "recipient_email": "jane@example.com",
                "sender_email": "",
                "user_id": 4,
            },
        )

        assert event == {"recipient_email": "j***@example.com", "sender_email": "", "user_id": 4}

    def test_mask_email_without_domain(self):
        assert mask_email("not-an-email") == "***"


class TestContextVars:
    """Tests for context variable binding."""

    def setup_method(self):
        clear_contextvars()

    def teardown_method(self):
        clear_contextvars()

    def test_bind_and_clear(self):
        bind_contextvars(correlation_id="abc123", **{"http.method": "GET"})

        assert get_contextvars() == {"correlation_id": "abc123", "http.method": "GET"}

        clear_contextvars()

        assert get_contextvars() == {}


class TestLogOutput:
    """Tests for actual log output."""

    def setup_method(self):
        clear_contextvars()
        configure_logging(json_format=True, log_level="DEBUG")

    def teardown_method(self):
        clear_contextvars()

    def test_event_reaches_stdlib(self, caplog):
        logger = get_logger("test.json_output")
        bind_contextvars(correlation_id="test-correlation-123")

        with caplog.at_level(logging.DEBUG, logger="test.json_output"):
            logger.info("notification_dispatched", actions=2)

        assert "notification_dispatched" in caplog.text

    def test_exception_is_logged(self, caplog):
        logger = get_logger("test.exception")

        with caplog.at_level(logging.DEBUG, logger="test.exception"):
            try:
                raise ValueError("Test error")
            except ValueError:
                logger.exception("notification_action_crashed")

        assert "ValueError: Test error" in caplog.text
