"""
Logging module settings loaded from the environment
"""

import os
from typing import List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")

DEFAULT_COMPONENT_NAME = "logging-module"
ENV_PREFIX = "LOGGING_MODULE_"


def _as_bool(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() == "true"


def _as_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class DatabaseSettings(BaseModel):
    """Connection parameters for the log store"""
    url: Optional[str] = Field(None, description="Full SQLAlchemy URL, overrides the parts below")
    dialect: str = "postgresql+psycopg"
    host: str = "localhost"
    port: int = 5432
    username: Optional[str] = None
    password: Optional[str] = None
    database: str = "logs"
    db_schema: Optional[str] = Field(None, description="Schema holding the log tables")
    table_name: str = "logs"

    def sqlalchemy_url(self) -> str:
        if self.url:
            return self.url
        credentials = ""
        if self.username:
            credentials = self.username
            if self.password:
                credentials += f":{self.password}"
            credentials += "@"
        return f"{self.dialect}://{credentials}{self.host}:{self.port}/{self.database}"


class EmailSettings(BaseModel):
    """Outbound email settings for health check alerts"""
    send_from: Optional[str] = None
    health_check_to: List[str] = Field(default_factory=list)
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    use_tls: bool = True


class LoggingSettings(BaseModel):
    """Recognized configuration for one logger instance and its scheduler"""
    component_name: str = DEFAULT_COMPONENT_NAME
    level: str = "INFO"
    api_request_logging: bool = False
    api_request_threshold_ms: int = Field(30000, ge=0)
    sql_query_logging: bool = False
    health_check_paths: List[str] = Field(default_factory=lambda: ["/status_auth"])
    monitor_interval_minutes: int = Field(15, ge=1, le=59)
    log_retention_days: int = Field(5, ge=0)
    protection_retention_days: int = Field(30, ge=0)
    purge_hour: int = Field(22, ge=0, le=23)
    purge_minute: int = Field(0, ge=0, le=59)
    timezone: str = "UTC"
    environment: str = "development"
    sentry_dsn: Optional[str] = Field(None, description="Error tracker DSN, reporting is off when unset")
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Normalize log level (WARNING -> WARN)"""
        level = str(v).upper()
        if level == "WARNING":
            level = "WARN"
        if level not in LEVELS:
            raise ValueError(f"Invalid log level {v!r}. Expected one of {', '.join(LEVELS)}")
        return level

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, load_files: bool = True) -> "LoggingSettings":
        """
        Build settings from environment variables

        Args:
            environ: Mapping to read instead of os.environ
            load_files: Load .env.local and .env into os.environ first

        Returns:
            Validated settings
        """
        if environ is None:
            if load_files:
                # .env.local wins over .env, neither overrides the real environment
                load_dotenv('.env.local')
                load_dotenv()
            environ = os.environ

        def env(name: str, prefix: str = ENV_PREFIX) -> Optional[str]:
            value = environ.get(f"{prefix}{name}")
            return value if value not in (None, "") else None

        values = {
            "component_name": env("COMPONENT_NAME"),
            "level": env("LEVEL"),
            "timezone": env("TIMEZONE"),
            "environment": env("APP_ENV", prefix=""),
            "sentry_dsn": env("SENTRY_DSN", prefix=""),
            "monitor_interval_minutes": env("MONITOR_THRESHOLD_MINUTES"),
            "log_retention_days": env("PURGE_THRESHOLD_DAYS"),
            "protection_retention_days": env("CONNECTION_PROTECTION_RETENTION_PERIOD"),
            "purge_hour": env("PURGE_HOUR"),
            "purge_minute": env("PURGE_MINUTE"),
        }
        settings = {key: value for key, value in values.items() if value is not None}

        if env("API_REQUESTS") is not None:
            settings["api_request_logging"] = _as_bool(env("API_REQUESTS"))
        if env("SQL_QUERIES") is not None:
            settings["sql_query_logging"] = _as_bool(env("SQL_QUERIES"))
        if env("API_REQUEST_THRESHOLD_SECONDS") is not None:
            settings["api_request_threshold_ms"] = int(env("API_REQUEST_THRESHOLD_SECONDS")) * 1000
        if env("HEALTH_CHECK_PATHS") is not None:
            settings["health_check_paths"] = _as_list(env("HEALTH_CHECK_PATHS"))

        database = {
            "url": env("DB_URL"),
            "dialect": env("DB_DIALECT"),
            "host": env("DB_HOST"),
            "port": env("DB_PORT"),
            "username": env("DB_USERNAME"),
            "password": env("DB_PASSWORD"),
            "database": env("DB_DATABASE"),
            "db_schema": env("DB_SCHEMA"),
            "table_name": env("DB_TABLE_NAME"),
        }
        settings["database"] = DatabaseSettings(
            **{key: value for key, value in database.items() if value is not None}
        )

        email = {
            "send_from": env("SEND_FROM_EMAIL_ADDRESS", prefix=""),
            "health_check_to": _as_list(env("SEND_HEALTH_CHECK_EMAIL_TO", prefix="")),
            "smtp_host": env("SMTP_HOST", prefix=""),
            "smtp_port": env("SMTP_PORT", prefix=""),
            "smtp_username": env("SMTP_USERNAME", prefix=""),
            "smtp_password": env("SMTP_PASSWORD", prefix=""),
        }
        if env("SMTP_USE_TLS", prefix="") is not None:
            email["use_tls"] = _as_bool(env("SMTP_USE_TLS", prefix=""))
        settings["email"] = EmailSettings(
            **{key: value for key, value in email.items() if value not in (None, [])}
        )

        return cls(**settings)
