"""
Pydantic models for log ingestion and log viewer API schemas
"""

import re
from datetime import date, timedelta
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .query import LogFilters, Pagination, SortColumn, SortDirection


class LogEntry(BaseModel):
    """Model for a log entry submitted over HTTP"""
    level: Literal["DEBUG", "INFO", "WARN", "WARNING", "ERROR"] = Field(
        "INFO", description="Log level"
    )
    context: str = Field(..., min_length=1, max_length=100, description="Source label of the entry")
    message: Optional[str] = Field(None, description="Log message")
    sso_id: Optional[str] = Field(None, max_length=50)
    agency_id: Optional[int] = None
    agency_program_id: Optional[int] = None
    error_code: Optional[int] = None
    request_method: Optional[str] = Field(None, max_length=10)
    request_url: Optional[str] = None
    request_body: Optional[Any] = None
    response_code: Optional[int] = None
    response_body: Optional[Any] = None
    sql: Optional[str] = None
    data: Optional[Dict[str, Any]] = Field(None, description="Additional structured data")
    elapsed_time: Optional[int] = Field(None, ge=0, description="Elapsed time in milliseconds")

    @field_validator('level')
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Normalize log level (WARNING -> WARN)"""
        return "WARN" if v == "WARNING" else v


def _parse_day(value: Optional[str], field_name: str) -> Optional[date]:
    """
    Parse a calendar day, supporting ISO dates and relative days or weeks.

    Relative formats:
    - '3d' = 3 days ago
    - '2w' = 2 weeks ago
    """
    if not value:
        return None

    relative_pattern = re.match(r'^(\d+)([dw])$', value.lower())
    if relative_pattern:
        amount = int(relative_pattern.group(1))
        unit = relative_pattern.group(2)
        days = amount * 7 if unit == 'w' else amount
        return date.today() - timedelta(days=days)

    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        raise ValueError(
            f"Invalid {field_name} format. Use YYYY-MM-DD or a relative format "
            f"(e.g., '3d', '2w'). Got: {value}"
        )


class LogQueryParams(BaseModel):
    """Query parameters for GET /api/logs endpoint"""
    level: Optional[Literal["DEBUG", "INFO", "WARN", "ERROR"]] = Field(
        None, description="Filter by log level"
    )
    start_date: Optional[str] = Field(None, description="First day (YYYY-MM-DD) or relative ('3d', '2w')")
    end_date: Optional[str] = Field(None, description="Last day included (YYYY-MM-DD)")
    sort: SortColumn = Field(SortColumn.TIMESTAMP, description="Sort column")
    direction: SortDirection = Field(SortDirection.DESC, description="Sort direction")
    offset: int = Field(0, ge=0, description="Rows to skip")
    limit: int = Field(100, ge=1, le=10000, description="Maximum number of records to return")

    def to_filters(self) -> LogFilters:
        return LogFilters(
            level=self.level,
            start_date=_parse_day(self.start_date, 'start_date'),
            end_date=_parse_day(self.end_date, 'end_date'),
        )

    def to_pagination(self) -> Pagination:
        return Pagination(offset=self.offset, limit=self.limit, sort=self.sort, direction=self.direction)


class LogIngestResponse(BaseModel):
    """Response for POST /api/logs"""
    status: str = "success"
    message: str = "Log entry recorded"
    timestamp: str


class LogQueryResponse(BaseModel):
    """Response for GET /api/logs"""
    logs: List[Dict[str, Any]]
    count: int
    total: int
    query: Dict[str, Any]
