"""
Log API endpoints for ingestion and the log viewer
"""

from fastapi import APIRouter, HTTPException, Header, Query, Depends, Request
from typing import Optional, Annotated
from datetime import datetime
import asyncio
import os

from .models import (
    LogEntry,
    LogQueryParams,
    LogIngestResponse,
    LogQueryResponse
)
from .config import get_logger
from .engine import LogEngine
from .interface import LoggerInterface
from .query import SortColumn, SortDirection

router = APIRouter(prefix="/api", tags=["logs"])

logger = get_logger("log-api")


def get_logging_module(request: Request) -> LoggerInterface:
    """Logger instance registered on the application at startup"""
    logging_module = getattr(request.app.state, "logging_module", None)
    if logging_module is None:
        raise HTTPException(status_code=503, detail="Logging module is not configured")
    return logging_module


def verify_bearer_token(authorization: Annotated[Optional[str], Header()] = None) -> None:
    """
    Verify Bearer token from Authorization header

    Args:
        authorization: Authorization header value

    Raises:
        HTTPException: If token is missing or invalid
    """
    expected_token = os.environ.get("API_BEARER_TOKEN")

    if not expected_token:
        # If no token configured, allow access (development mode)
        logger.warning("API_BEARER_TOKEN not configured - authentication disabled!")
        return

    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Please provide Authorization header with Bearer token."
        )

    # Extract token from "Bearer <token>"
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid Authorization header format. Expected: Bearer <token>"
        )

    if parts[1] != expected_token:
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication token"
        )


@router.post("/logs", response_model=LogIngestResponse, status_code=201)
async def ingest_log(
    log_entry: LogEntry,
    logging_module: LoggerInterface = Depends(get_logging_module),
    _: None = Depends(verify_bearer_token)
) -> LogIngestResponse:
    """
    Record a log entry sent by another service

    Requires Bearer token authentication via Authorization header.

    Example:
    ```bash
    curl -X POST http://localhost:8000/api/logs \
      -H "Content-Type: application/json" \
      -H "Authorization: Bearer your-token-here" \
      -d '{"level": "ERROR", "context": "billing", "message": "Test error"}'
    ```
    """
    data = log_entry.model_dump(exclude_none=True, exclude={"level"})

    if not LogEngine.is_valid_log_data_format(data):
        raise HTTPException(
            status_code=400,
            detail="context and either sql, message or request_url are required"
        )

    await asyncio.to_thread(logging_module.write, log_entry.level, data)

    return LogIngestResponse(
        status="success",
        message="Log entry recorded",
        timestamp=datetime.now().isoformat()
    )


@router.get("/logs", response_model=LogQueryResponse)
async def query_logs(
    level: Optional[str] = Query(None, description="Filter by log level"),
    start_date: Optional[str] = Query(None, description="First day - YYYY-MM-DD or relative (e.g., '3d', '2w')"),
    end_date: Optional[str] = Query(None, description="Last day included - YYYY-MM-DD"),
    sort: SortColumn = Query(SortColumn.TIMESTAMP, description="Sort column"),
    direction: SortDirection = Query(SortDirection.DESC, description="Sort direction"),
    offset: int = Query(0, ge=0, description="Rows to skip"),
    limit: int = Query(100, ge=1, le=10000, description="Max results"),
    logging_module: LoggerInterface = Depends(get_logging_module),
    _: None = Depends(verify_bearer_token)
) -> LogQueryResponse:
    """
    Query log records with filtering, sorting and pagination

    Requires Bearer token authentication via Authorization header.

    Examples:
    ```bash
    # ERROR records for January, newest first
    curl -X GET "http://localhost:8000/api/logs?level=ERROR&start_date=2024-01-01&end_date=2024-01-31" \
      -H "Authorization: Bearer your-token-here"

    # Slowest requests of the last 3 days
    curl -X GET "http://localhost:8000/api/logs?start_date=3d&sort=elapsed_time&limit=20" \
      -H "Authorization: Bearer your-token-here"
    ```
    """
    try:
        query_params = LogQueryParams(
            level=level.upper() if level else None,
            start_date=start_date,
            end_date=end_date,
            sort=sort,
            direction=direction,
            offset=offset,
            limit=limit
        )
        filters = query_params.to_filters()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    rows, total = await asyncio.to_thread(logging_module.query, filters, query_params.to_pagination())

    return LogQueryResponse(
        logs=rows,
        count=len(rows),
        total=total,
        query={
            "level": query_params.level,
            "start_date": filters.start_date.isoformat() if filters.start_date else None,
            "end_date": filters.end_date.isoformat() if filters.end_date else None,
            "sort": query_params.sort.value,
            "direction": query_params.direction.value,
            "offset": offset,
            "limit": limit
        }
    )
