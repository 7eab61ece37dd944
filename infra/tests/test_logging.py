"""
Tests for structured logging configuration.
"""

import json
import logging
import sys

import pytest
from structlog.contextvars import get_contextvars

from core.logging import (
    NOISY_LOGGERS,
    _add_service_name,
    bind_contextvars,
    clear_contextvars,
    configure_logging,
    get_logger,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_level_is_applied(self):
        """Test that the root logger follows bamboo_LOG_LEVEL."""
        configure_logging(json_format=False, log_level="debug")

        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        """Test that a typo in the level does not break synthesis."""
        configure_logging(log_level="LOUD")

        assert logging.getLogger().level == logging.INFO

    def test_records_go_to_stderr(self):
        """Test that stdout stays free for the synthesized template."""
        configure_logging()

        (handler,) = logging.getLogger().handlers
        assert handler.stream is sys.stderr

    def test_noisy_libraries_stay_at_warning(self):
        """Test that jsii and boto chatter is hidden at DEBUG."""
        configure_logging(log_level="DEBUG")

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_json_line_for_stdlib_record(self, capsys):
        """Test that plain stdlib records are rendered as JSON with context."""
        configure_logging(json_format=True)
        bind_contextvars(project="mujeres", env="dev")

        logging.getLogger("stacks.vpc_stack").warning("subnet lookup skipped")

        line = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert line["event"] == "subnet lookup skipped"
        assert line["level"] == "warning"
        assert line["service"] == "mujeres-infra"
        assert line["env"] == "dev"


class TestServiceName:
    """Tests for the service field processor."""

    def test_derived_from_project(self):
        event = _add_service_name(None, "info", {"event": "x", "project": "mujeres"})
        assert event["service"] == "mujeres-infra"

    def test_explicit_service_kept(self):
        event = _add_service_name(None, "info", {"project": "mujeres", "service": "waf"})
        assert event["service"] == "waf"

    def test_no_project(self):
        assert "service" not in _add_service_name(None, "info", {"event": "x"})


class TestContextVars:
    """Tests for context variable binding."""

    def test_bind_and_clear(self):
        """Test that bound values are visible until cleared."""
        bind_contextvars(project="mujeres", env="pro")
        assert get_contextvars() == {"project": "mujeres", "env": "pro"}

        clear_contextvars()
        assert get_contextvars() == {}

    def test_get_logger_binds_to_stdlib_name(self, capsys):
        """Test that the module name ends up in the rendered record."""
        configure_logging(json_format=True)

        get_logger("stacks.waf_stack").info("rules_built", count=32)

        line = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert line["logger"] == "stacks.waf_stack"
        assert line["count"] == 32
