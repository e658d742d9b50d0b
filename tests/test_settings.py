"""Tests for environment based settings."""

import pytest
from pydantic import ValidationError

from shared_logging.settings import LoggingSettings


def test_defaults():
    settings = LoggingSettings.from_env({})

    assert settings.component_name == "logging-module"
    assert settings.level == "INFO"
    assert settings.api_request_logging is False
    assert settings.monitor_interval_minutes == 15
    assert settings.log_retention_days == 5
    assert settings.protection_retention_days == 30
    assert (settings.purge_hour, settings.purge_minute) == (22, 0)
    assert settings.health_check_paths == ["/status_auth"]
    assert settings.database.table_name == "logs"


def test_reads_prefixed_and_shared_variables():
    settings = LoggingSettings.from_env({
        "LOGGING_MODULE_COMPONENT_NAME": "billing",
        "LOGGING_MODULE_LEVEL": "warning",
        "LOGGING_MODULE_API_REQUESTS": "true",
        "LOGGING_MODULE_API_REQUEST_THRESHOLD_SECONDS": "2",
        "LOGGING_MODULE_SQL_QUERIES": "TRUE",
        "LOGGING_MODULE_MONITOR_THRESHOLD_MINUTES": "5",
        "LOGGING_MODULE_PURGE_THRESHOLD_DAYS": "7",
        "LOGGING_MODULE_HEALTH_CHECK_PATHS": "/status_auth, /ping",
        "LOGGING_MODULE_TIMEZONE": "America/Chicago",
        "LOGGING_MODULE_DB_URL": "sqlite:///logs.db",
        "LOGGING_MODULE_DB_TABLE_NAME": "billing_logs",
        "SEND_FROM_EMAIL_ADDRESS": "logs@example.com",
        "SEND_HEALTH_CHECK_EMAIL_TO": "a@example.com,b@example.com",
        "SMTP_USE_TLS": "false",
        "APP_ENV": "staging",
        "SENTRY_DSN": "https://public@o0.ingest.sentry.io/1",
    })

    assert settings.component_name == "billing"
    assert settings.level == "WARN"
    assert settings.api_request_logging is True
    assert settings.api_request_threshold_ms == 2000
    assert settings.sql_query_logging is True
    assert settings.monitor_interval_minutes == 5
    assert settings.log_retention_days == 7
    assert settings.health_check_paths == ["/status_auth", "/ping"]
    assert settings.timezone == "America/Chicago"
    assert settings.environment == "staging"
    assert settings.sentry_dsn == "https://public@o0.ingest.sentry.io/1"
    assert settings.database.sqlalchemy_url() == "sqlite:///logs.db"
    assert settings.database.table_name == "billing_logs"
    assert settings.email.health_check_to == ["a@example.com", "b@example.com"]
    assert settings.email.use_tls is False


def test_database_url_is_assembled_from_parts():
    settings = LoggingSettings.from_env({
        "LOGGING_MODULE_DB_HOST": "db",
        "LOGGING_MODULE_DB_USERNAME": "app",
        "LOGGING_MODULE_DB_PASSWORD": "secret",
        "LOGGING_MODULE_DB_DATABASE": "audit",
    })

    assert settings.database.sqlalchemy_url() == "postgresql+psycopg://app:secret@db:5432/audit"


@pytest.mark.parametrize("name, value", [
    ("LOGGING_MODULE_LEVEL", "VERBOSE"),
    ("LOGGING_MODULE_MONITOR_THRESHOLD_MINUTES", "60"),
    ("LOGGING_MODULE_PURGE_HOUR", "24"),
])
def test_invalid_values_are_rejected(name, value):
    with pytest.raises(ValidationError):
        LoggingSettings.from_env({name: value})
