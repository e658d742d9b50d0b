"""Tests for the logger interface, its fail-open mode and the registry."""

import json
from unittest.mock import MagicMock

from shared_logging.errors import NotFoundError, SystemFailureError
from shared_logging.interface import LoggerInterface, LoggerRegistry, create_logger
from tests.helpers import all_logs, make_request, make_settings


class TestFailOpen:

    def test_initialization_failure_yields_noop_logger(self, storage):
        reporter = MagicMock()

        logger = create_logger(make_settings(timezone="Not/A_Zone"), storage=storage, error_reporter=reporter)

        assert not logger.initialized
        assert logger.component_name == "logging-module"
        reporter.assert_called_once()
        assert reporter.call_args.args[0] == "logging-module constructor"

    def test_invalid_environment_settings_yield_noop_logger(self, storage, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("LOGGING_MODULE_LEVEL", "LOUD")

        logger = create_logger(component_name="billing", storage=storage)

        assert logger.initialized is False
        assert logger.component_name == "billing"
        logger.error({"context": "billing", "message": "dropped"})
        assert all_logs(storage) == []

    def test_noop_operations_are_safe(self, storage):
        logger = create_logger(make_settings(timezone="Not/A_Zone"), storage=storage)

        logger.info({"context": "billing", "message": "dropped"})
        logger.error({"context": "billing", "err": ValueError("dropped")})
        logger.sql_query("SELECT 1")

        assert all_logs(storage) == []
        assert logger.query({"level": "ERROR"}) == ([], 0)
        assert logger.monitor() == 0
        assert logger.purge() is None
        assert logger.send_email("ops@example.com", "subject", "<p>x</p>") is False
        assert logger.timezone is None

    def test_noop_error_handling_still_responds(self):
        logger = LoggerInterface(None, component_name="billing")

        not_found = logger.handle_api_exception(make_request("/x"), NotFoundError("no such booking"))
        failure = logger.handle_api_exception(make_request("/x"), SystemFailureError("db down"))

        assert not_found.status_code == 404
        assert json.loads(not_found.body) == {"detail": "no such booking"}
        assert failure.status_code == 500

    def test_noop_parse_error(self):
        logger = LoggerInterface(None)

        parsed = logger.parse_error(ValueError("bad input"))

        assert parsed.message == "bad input"


class TestLevels:

    def test_convenience_methods_write_their_level(self, logger, storage):
        logger.info({"context": "c", "message": "i"})
        logger.warn({"context": "c", "message": "w"})
        logger.warning({"context": "c", "message": "w2"})
        logger.error({"context": "c", "message": "e"})
        logger.debug({"context": "c", "message": "d"})

        assert [row["level"] for row in all_logs(storage)] == ["INFO", "WARN", "WARN", "ERROR"]


class TestRegistry:

    def test_same_component_returns_same_instance(self, storage, email_sender):
        registry = LoggerRegistry()

        first = create_logger(make_settings(), component_name="billing", storage=storage,
                              email_sender=email_sender, registry=registry)
        second = create_logger(make_settings(), component_name="billing", storage=storage,
                               email_sender=email_sender, registry=registry)

        assert first is second
        assert len(registry) == 1

    def test_components_are_isolated(self, storage, email_sender):
        registry = LoggerRegistry()
        billing = create_logger(make_settings(), component_name="billing", storage=storage,
                                email_sender=email_sender, registry=registry)
        auth = create_logger(make_settings(level="ERROR"), component_name="auth", storage=storage,
                             email_sender=email_sender, registry=registry)

        billing.info({"context": "c", "message": "from billing"})
        auth.info({"context": "c", "message": "dropped by level"})
        auth.error({"context": "c", "message": "from auth"})

        rows = all_logs(storage)
        assert [(row["component"], row["message"]) for row in rows] == [
            ("billing", "from billing"),
            ("auth", "from auth"),
        ]
        assert registry.get("billing") is billing
        assert "auth" in registry
        assert set(registry) == {billing, auth}

    def test_default_component_name_comes_from_settings(self, logger):
        assert logger.component_name == "test-component"
