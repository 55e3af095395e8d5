"""Tests for HookRelay structured logging."""

import structlog

from hookrelay.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


class TestConfigureLogging:
    """Tests for logging configuration."""

    def test_configure_with_defaults(self):
        """Should configure with INFO level and JSON format by default."""
        configure_logging()
        logger = get_logger("test")
        logger.info("test message")

    def test_configure_with_text_format(self):
        """Should accept text format for development."""
        configure_logging(level="DEBUG", format="text")
        logger = get_logger("test")
        logger.debug("text format message", webhook_id=1)

    def test_unknown_level_falls_back(self):
        """An unknown level name should not raise."""
        configure_logging(level="LOUD")
        get_logger("test").info("still works")


class TestGetLogger:
    def test_get_logger_with_name(self):
        assert get_logger("hookrelay.api") is not None

    def test_loggers_are_callable(self):
        logger = get_logger("test")
        assert callable(getattr(logger, "info", None))
        assert callable(getattr(logger, "warning", None))


class TestContextBinding:
    """Tests for context variable binding."""

    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_bind_context(self):
        """Bound values should be visible in the context."""
        bind_context(event_id=1, webhook_id=2)
        ctx = structlog.contextvars.get_contextvars()
        assert ctx == {"event_id": 1, "webhook_id": 2}

    def test_clear_context(self):
        bind_context(event_id=1)
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
