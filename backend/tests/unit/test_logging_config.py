"""Unit tests for the structlog logging configuration."""

import structlog

from waveup.logging_config import setup_logging


class TestSetupLogging:
    def test_setup_logging_runs_without_error_debug(self):
        setup_logging(debug=True)
        logger = structlog.get_logger("test")
        # Should not raise
        logger.info("test_event", key="value")

    def test_setup_logging_runs_without_error_production(self):
        setup_logging(debug=False)
        logger = structlog.get_logger("test")
        # Should not raise
        logger.info("quota_exceeded", tier="free", used_today=3)


class TestStructlogContextBinding:
    def test_context_binding_works(self):
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(user_id="creator-1", screen="ideas")

        bound = structlog.contextvars.get_contextvars()
        assert bound["user_id"] == "creator-1"
        assert bound["screen"] == "ideas"

        structlog.contextvars.clear_contextvars()
        assert structlog.contextvars.get_contextvars() == {}
