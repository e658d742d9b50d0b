"""Shared fixtures: in-memory log store, fixed clock and a mocked email sender."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from shared_logging.database import LogStorage
from shared_logging.engine import LogEngine
from shared_logging.interface import create_logger
from tests.helpers import FakeClock, make_settings


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def storage(db_engine):
    storage = LogStorage(db_engine)
    storage.create_tables()
    return storage


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def email_sender():
    return MagicMock()


@pytest.fixture
def engine(storage, settings, email_sender, clock):
    return LogEngine(storage, settings, email_sender=email_sender, clock=clock)


@pytest.fixture
def logger(storage, settings, email_sender, clock):
    return create_logger(settings, storage=storage, email_sender=email_sender, clock=clock)
