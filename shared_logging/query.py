"""
Filtered, paginated queries over the log table.

Only allow-listed columns and directions reach the statement text. Filter
values, offset and limit are always bound parameters.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import Table, func, select
from sqlalchemy.sql import Select

from .database import LogStorage
from .settings import LEVELS

DateLike = Union[date, str, None]


class SortColumn(str, Enum):
    ID = "id"
    TIMESTAMP = "timestamp"
    LEVEL = "level"
    COMPONENT = "component"
    CONTEXT = "context"
    ELAPSED_TIME = "elapsed_time"
    RESPONSE_CODE = "response_code"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


def _as_date(value: DateLike) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


@dataclass
class LogFilters:
    level: Optional[str] = None
    start_date: DateLike = None
    end_date: DateLike = None

    def __post_init__(self):
        if self.level is not None:
            self.level = str(self.level).upper()
            if self.level not in LEVELS:
                raise ValueError(f"Invalid level filter: {self.level}")
        self.start_date = _as_date(self.start_date)
        self.end_date = _as_date(self.end_date)

    @classmethod
    def from_mapping(cls, values: Optional[Dict[str, Any]]) -> "LogFilters":
        values = values or {}
        return cls(
            level=values.get("level") or None,
            start_date=values.get("start_date"),
            end_date=values.get("end_date"),
        )


@dataclass
class Pagination:
    offset: Optional[int] = None
    limit: Optional[int] = None
    sort: Union[SortColumn, str] = SortColumn.TIMESTAMP
    direction: Union[SortDirection, str] = SortDirection.DESC

    def __post_init__(self):
        # unknown names raise here rather than reaching the statement
        self.sort = SortColumn(self.sort)
        self.direction = SortDirection(getattr(self.direction, "value", self.direction).lower())
        if self.offset is not None and self.offset < 0:
            raise ValueError("offset must not be negative")
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must not be negative")


class QueryBuilder:
    """Build and run the row and count statements sharing one WHERE clause"""

    def __init__(self, storage: LogStorage):
        self.storage = storage
        self.table: Table = storage.logs

    def criteria(self, filters: LogFilters) -> List[Any]:
        column = self.table.c
        clauses = []

        if filters.level:
            clauses.append(column.level == filters.level)

        # calendar day bounds, end date inclusive
        if filters.start_date:
            clauses.append(column.timestamp >= datetime.combine(filters.start_date, time.min))
        if filters.end_date:
            next_day = filters.end_date + timedelta(days=1)
            clauses.append(column.timestamp < datetime.combine(next_day, time.min))

        return clauses

    def build(self, filters: LogFilters, pagination: Pagination) -> Tuple[Select, Select]:
        clauses = self.criteria(filters)

        sort_column = self.table.c[pagination.sort.value]
        id_column = self.table.c.id
        columns = [sort_column] if sort_column is id_column else [sort_column, id_column]
        if pagination.direction is SortDirection.ASC:
            order = [column.asc() for column in columns]
        else:
            order = [column.desc() for column in columns]

        rows = select(self.table).where(*clauses).order_by(*order)
        if pagination.offset:
            rows = rows.offset(pagination.offset)
        if pagination.limit is not None:
            rows = rows.limit(pagination.limit)

        count = select(func.count()).select_from(self.table).where(*clauses)
        return rows, count

    def query(self, filters: Optional[LogFilters] = None,
              pagination: Optional[Pagination] = None) -> Tuple[List[Dict[str, Any]], int]:
        """
        Run the row and count statements.

        The two statements are independent, so concurrent writes or purges
        between them can make the total differ slightly from the rows seen.
        """
        rows_statement, count_statement = self.build(filters or LogFilters(), pagination or Pagination())
        rows = self.storage.fetch_all(rows_statement)
        total = self.storage.fetch_scalar(count_statement)
        return rows, int(total)
