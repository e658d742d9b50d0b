"""
Public logger interface, per component registry and factory.

A logger whose engine failed to initialize keeps the same interface; every
operation turns into a safe no-op so calling code never checks for presence.
"""

import functools
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from starlette.requests import Request
from starlette.responses import Response

from .cleanup import PurgeJob, PurgeResult
from .database import LogStorage
from .engine import (
    CustomResponseHandler,
    ErrorReporter,
    Level,
    LogEngine,
    ParsedError,
    fallback_error_response,
    handle_internal_error,
    parse_error,
    send_api_authentication_error,
    send_api_validation_error,
)
from .mailer import EmailSender, SmtpEmailSender
from .middleware import MiddlewareHooks, RequestResponseLogger
from .monitor import AlertDispatcher
from .query import LogFilters, Pagination, QueryBuilder
from .settings import DEFAULT_COMPONENT_NAME, LoggingSettings
from .telemetry import init_sentry


def _requires_engine(fallback: Optional[Callable[..., Any]] = None):
    """Run the wrapped operation only when the engine exists, else its fallback"""
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            if self._engine is None:
                return fallback(*args, **kwargs) if fallback else None
            return method(self, *args, **kwargs)
        return wrapper
    return decorator


class LoggerInterface:
    """Logger handed to application code for one component"""

    LEVEL = Level

    def __init__(self, engine: Optional[LogEngine], component_name: Optional[str] = None):
        self._engine = engine
        self.component_name = engine.component_name if engine else (component_name or DEFAULT_COMPONENT_NAME)

        if engine is None:
            self.middleware = MiddlewareHooks()
            self._alerts = None
            self._purge = None
            self._query = None
            return

        settings = engine.settings
        self.middleware = MiddlewareHooks(RequestResponseLogger(engine, settings.health_check_paths))
        self._alerts = AlertDispatcher(
            engine,
            engine.email_sender,
            settings.email.health_check_to,
            lookback_minutes=settings.monitor_interval_minutes,
            environment=settings.environment,
        )
        self._purge = PurgeJob(engine, settings.log_retention_days, settings.protection_retention_days)
        self._query = QueryBuilder(engine.storage)

    @property
    def initialized(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Optional[LogEngine]:
        return self._engine

    @property
    def timezone(self) -> Optional[str]:
        return self._engine.settings.timezone if self._engine else None

    @_requires_engine()
    def write(self, level: Level, data: Dict[str, Any]) -> None:
        self._engine.write(level, data)

    def debug(self, data: Dict[str, Any]) -> None:
        self.write(Level.DEBUG, data)

    def info(self, data: Dict[str, Any]) -> None:
        self.write(Level.INFO, data)

    def warn(self, data: Dict[str, Any]) -> None:
        self.write(Level.WARN, data)

    warning = warn

    def error(self, data: Dict[str, Any]) -> None:
        self.write(Level.ERROR, data)

    @_requires_engine()
    def sql_query(self, statement: str, parameters: Any = None) -> None:
        self._engine.sql_query(statement, parameters)

    @_requires_engine()
    def attach_sql_logging(self, engine: Any) -> None:
        self._engine.attach_sql_logging(engine)

    @_requires_engine()
    def log_connection_protection_request(self, data: Dict[str, Any]) -> Optional[Any]:
        return self._engine.log_connection_protection_request(data)

    def parse_error(self, err: Any) -> ParsedError:
        if self._engine:
            return self._engine.parse_error(err)
        return parse_error(err)

    @_requires_engine(fallback=lambda request, err: fallback_error_response(err))
    def handle_api_exception(self, request: Request, err: Any) -> Response:
        return self._engine.handle_api_exception(request, err)

    @_requires_engine(fallback=lambda request, result: fallback_error_response(getattr(result, 'err', result)))
    def handle_result_error(self, request: Request, result: Any) -> Response:
        return self._engine.handle_result_error(request, result)

    @staticmethod
    def send_api_validation_error(message: str) -> Response:
        return send_api_validation_error(message)

    @staticmethod
    def send_api_authentication_error(message: str) -> Response:
        return send_api_authentication_error(message)

    @_requires_engine()
    def set_custom_error_response_handler(self, handler: CustomResponseHandler) -> None:
        self._engine.set_custom_error_response_handler(handler)

    @_requires_engine(fallback=lambda *args, **kwargs: False)
    def send_email(self, to: Any, subject: str, html_body: str, text_body: Optional[str] = None) -> bool:
        return self._engine.send_email(to, subject, html_body, text_body)

    @_requires_engine(fallback=lambda: 0)
    def monitor(self) -> int:
        return self._alerts.run()

    @_requires_engine()
    def purge(self) -> Optional[PurgeResult]:
        return self._purge.run()

    @_requires_engine(fallback=lambda *args, **kwargs: ([], 0))
    def query(self, filters: Any = None, pagination: Optional[Pagination] = None) -> Tuple[List[Dict[str, Any]], int]:
        """
        Filtered, paginated log records and the total match count

        Args:
            filters: LogFilters or a mapping with level, start_date and end_date
            pagination: Offset, limit and allow-listed sort

        Returns:
            (rows, total_count), ([], 0) when the query fails
        """
        try:
            if not isinstance(filters, LogFilters):
                filters = LogFilters.from_mapping(filters)
            return self._query.query(filters, pagination)
        except Exception as err:
            self._engine.write(Level.ERROR, {
                'context': 'logging-module query',
                'message': str(err) or type(err).__name__
            })
            return [], 0


class LoggerRegistry:
    """Logger instances keyed by component name, passed explicitly to consumers"""

    def __init__(self):
        self._loggers: Dict[str, LoggerInterface] = {}

    def register(self, logger: LoggerInterface) -> LoggerInterface:
        self._loggers[logger.component_name] = logger
        return logger

    def get(self, component_name: str) -> Optional[LoggerInterface]:
        return self._loggers.get(component_name)

    def __contains__(self, component_name: str) -> bool:
        return component_name in self._loggers

    def __iter__(self) -> Iterator[LoggerInterface]:
        return iter(self._loggers.values())

    def __len__(self) -> int:
        return len(self._loggers)


def create_logger(settings: Optional[LoggingSettings] = None,
                  component_name: Optional[str] = None,
                  storage: Optional[LogStorage] = None,
                  email_sender: Optional[EmailSender] = None,
                  error_reporter: Optional[ErrorReporter] = None,
                  registry: Optional[LoggerRegistry] = None,
                  create_tables: bool = False,
                  clock: Optional[Callable[[], Any]] = None) -> LoggerInterface:
    """
    Build the logger for one component.

    Returns the registered instance when ``registry`` already holds this
    component. Any initialization failure is reported and yields a no-op
    logger instead of raising.
    """
    if registry is not None and component_name and component_name in registry:
        return registry.get(component_name)

    try:
        settings = settings or LoggingSettings.from_env()
        if storage is None:
            storage = LogStorage.from_settings(settings.database)
        if create_tables:
            storage.create_tables()
        if email_sender is None:
            email_sender = SmtpEmailSender(settings.email)
        if error_reporter is None:
            error_reporter = init_sentry(settings.sentry_dsn, settings.environment)

        engine = LogEngine(
            storage,
            settings,
            component_name=component_name,
            email_sender=email_sender,
            error_reporter=error_reporter,
            clock=clock,
        )
        logger = LoggerInterface(engine)
    except Exception as err:
        handle_internal_error('constructor', err, error_reporter)
        logger = LoggerInterface(None, component_name=component_name)

    if registry is not None:
        if logger.component_name in registry:
            return registry.get(logger.component_name)
        registry.register(logger)
    return logger
