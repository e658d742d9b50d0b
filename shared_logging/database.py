"""
Relational storage for log records and connection protection audit records
"""

from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    func,
    insert,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.sql import Executable

from .settings import DatabaseSettings

CONNECTION_PROTECTION_TABLE = "connection_protection_logs"

# SQLite only auto-increments INTEGER PRIMARY KEY columns
Identifier = BigInteger().with_variant(Integer, "sqlite")


class LogTables(NamedTuple):
    metadata: MetaData
    logs: Table
    connection_protection_logs: Table


def build_tables(table_name: str = "logs", schema: Optional[str] = None) -> LogTables:
    """Define both log tables, the main table name and schema are deployment specific"""
    metadata = MetaData(schema=schema)

    logs = Table(
        table_name,
        metadata,
        Column("id", Identifier, primary_key=True, autoincrement=True),
        Column("level", String(5), nullable=False),
        Column("component", String(100), nullable=False),
        Column("context", String(100), nullable=False),
        Column("agency_id", BigInteger, nullable=True),
        Column("agency_program_id", BigInteger, nullable=True),
        Column("error_code", Integer, nullable=True),
        Column("message", Text, nullable=True),
        Column("sso_id", String(50), nullable=True),
        Column("request_method", String(10), nullable=True),
        Column("request_url", Text, nullable=True),
        Column("request_body", Text, nullable=True),
        Column("response_code", String(3), nullable=True),
        Column("response_body", Text, nullable=True),
        Column("sql", Text, nullable=True),
        Column("data", Text, nullable=True),
        Column("stack", Text, nullable=True),
        Column("elapsed_time", BigInteger, nullable=True),
        Column("timestamp", DateTime(timezone=False), nullable=False, server_default=func.now()),
    )

    connection_protection_logs = Table(
        CONNECTION_PROTECTION_TABLE,
        metadata,
        Column("id", Identifier, primary_key=True, autoincrement=True),
        Column("sso_id", String(50), nullable=False),
        Column("booking_id", Text, nullable=False),
        Column("request_method", String(10), nullable=False),
        Column("request_url", Text, nullable=False),
        Column("request_body", Text, nullable=False),
        Column("response_code", String(3), nullable=True),
        Column("response_body", Text, nullable=True),
        Column("error_message", Text, nullable=True),
        Column("timestamp", DateTime(timezone=False), nullable=False, server_default=func.now()),
    )

    return LogTables(metadata, logs, connection_protection_logs)


class LogStorage:
    """
    Thin repository over a SQLAlchemy engine.

    Records are append-only: the only statements issued are inserts, selects
    and age based deletes. Connection pooling is left to the engine.
    """

    def __init__(self, engine: Engine, table_name: str = "logs", schema: Optional[str] = None):
        self.engine = engine
        self.tables = build_tables(table_name, schema)

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> "LogStorage":
        engine = create_engine(settings.sqlalchemy_url(), pool_pre_ping=True)
        return cls(engine, table_name=settings.table_name, schema=settings.db_schema)

    @property
    def logs(self) -> Table:
        return self.tables.logs

    @property
    def connection_protection_logs(self) -> Table:
        return self.tables.connection_protection_logs

    @property
    def table_name(self) -> str:
        return self.tables.logs.name

    def create_tables(self) -> None:
        self.tables.metadata.create_all(self.engine, checkfirst=True)

    def insert_log(self, values: Dict[str, Any]) -> Any:
        with self.engine.begin() as conn:
            result = conn.execute(insert(self.logs).values(**values))
            return result.inserted_primary_key[0]

    def insert_connection_protection_log(self, values: Dict[str, Any]) -> Any:
        with self.engine.begin() as conn:
            result = conn.execute(insert(self.connection_protection_logs).values(**values))
            return result.inserted_primary_key[0]

    def fetch_all(self, statement: Executable) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            return [dict(row) for row in conn.execute(statement).mappings()]

    def fetch_scalar(self, statement: Executable) -> Any:
        with self.engine.connect() as conn:
            return conn.execute(statement).scalar_one()

    def find_recent_errors(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """ERROR records with a message, timestamped within [start, end]"""
        statement = (
            select(self.logs)
            .where(self.logs.c.level == "ERROR")
            .where(self.logs.c.message.is_not(None))
            .where(self.logs.c.timestamp.between(start, end))
            .order_by(self.logs.c.timestamp)
        )
        return self.fetch_all(statement)

    def delete_logs_before(self, cutoff: datetime) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(delete(self.logs).where(self.logs.c.timestamp < cutoff))
            return result.rowcount

    def delete_connection_protection_logs_before(self, cutoff: datetime) -> int:
        table = self.connection_protection_logs
        with self.engine.begin() as conn:
            result = conn.execute(delete(table).where(table.c.timestamp < cutoff))
            return result.rowcount
