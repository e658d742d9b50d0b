"""Helpers shared by the test modules."""

from datetime import datetime, timedelta

from sqlalchemy import select
from starlette.requests import Request

from shared_logging.database import LogStorage
from shared_logging.settings import EmailSettings, LoggingSettings

NOW = datetime(2024, 6, 10, 12, 0, 0)


class FakeClock:
    """Callable clock returning a settable naive datetime."""

    def __init__(self, current: datetime = NOW):
        self.current = current

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


def make_settings(**overrides) -> LoggingSettings:
    values = {
        "component_name": "test-component",
        "level": "INFO",
        "timezone": "UTC",
        "environment": "test",
        "email": EmailSettings(send_from="logs@example.com", health_check_to=["ops@example.com"]),
    }
    values.update(overrides)
    return LoggingSettings(**values)


def make_request(path: str = "/", method: str = "GET", headers=None, query_string: bytes = b"",
                 path_params=None) -> Request:
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query_string,
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "path_params": path_params or {},
    }
    return Request(scope)


def all_logs(storage: LogStorage):
    return storage.fetch_all(select(storage.logs).order_by(storage.logs.c.id))


def insert_log(storage: LogStorage, **values):
    record = {
        "level": "INFO",
        "component": "test-component",
        "context": "test",
        "message": "message",
        "timestamp": NOW,
    }
    record.update(values)
    return storage.insert_log(record)
