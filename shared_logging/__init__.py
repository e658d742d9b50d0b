"""
Shared Logging Package

This package provides the logging module shared by backend services:
- Structured log records persisted to a relational store
- Error classification and client safe API error responses
- Request/response logging middleware
- Log query API for the log viewer
- Scheduled health check alerts and log purging
"""

from .config import get_logger, setup_logging, ContextLogger
from .endpoints import router as log_router
from .engine import Level, LogEngine, parse_error
from .errors import (
    ErrorKind,
    NotFoundError,
    SystemFailureError,
    TaggedError,
    ValidationError,
    classify,
    http_status_for,
)
from .interface import LoggerInterface, LoggerRegistry, create_logger
from .middleware import RequestLoggingMiddleware, install_logging
from .query import LogFilters, Pagination, SortColumn, SortDirection
from .scheduler import ScheduledTaskCoordinator
from .settings import LoggingSettings

__all__ = [
    'get_logger',
    'setup_logging',
    'ContextLogger',
    'log_router',
    'Level',
    'LogEngine',
    'parse_error',
    'ErrorKind',
    'NotFoundError',
    'SystemFailureError',
    'TaggedError',
    'ValidationError',
    'classify',
    'http_status_for',
    'LoggerInterface',
    'LoggerRegistry',
    'create_logger',
    'RequestLoggingMiddleware',
    'install_logging',
    'LogFilters',
    'Pagination',
    'SortColumn',
    'SortDirection',
    'ScheduledTaskCoordinator',
    'LoggingSettings',
]
