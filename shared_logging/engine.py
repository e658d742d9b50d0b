"""
Log engine: level gating, validation, sanitization and persistence of log
records, plus error classification and client safe API error responses.

Nothing in this module may raise into the calling application. Every public
entry point catches its own failures and routes them to the diagnostic
logger (and the optional error reporter) instead.
"""

import json
import os
import re
import sysconfig
import traceback
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping, NamedTuple, Optional
from zoneinfo import ZoneInfo

from fastapi.responses import JSONResponse
from sqlalchemy import event
from starlette.requests import Request
from starlette.responses import Response

from .config import get_logger
from .database import LogStorage
from .errors import (
    AUTHENTICATION_ERROR_STATUS,
    HTTP_STATUS,
    ErrorKind,
    classify,
)
from .mailer import EmailSender, MessageRejected
from .settings import LoggingSettings


MODULE_NAME = 'logging-module'
CONTEXT_MAX_LENGTH = 100

diagnostics = get_logger()

ErrorReporter = Callable[[str, BaseException], None]
CustomResponseHandler = Callable[[Request, Any, str], Response]


class Level(str, Enum):
    DEBUG = 'DEBUG'
    INFO = 'INFO'
    WARN = 'WARN'
    ERROR = 'ERROR'


LEVEL_PRIORITY = {
    Level.DEBUG: 0,
    Level.INFO: 1,
    Level.WARN: 2,
    Level.ERROR: 3,
}


class ParsedError(NamedTuple):
    message: str
    stack: Optional[str]
    details: str


_FRAME_LINE = re.compile(r'^File "(?P<filename>[^"]+)", line \d+')
_PLATFORM_PATHS = tuple(
    os.path.abspath(path)
    for path in {sysconfig.get_paths()['stdlib'], sysconfig.get_paths()['platstdlib']}
)


def handle_internal_error(context: str, err: BaseException,
                          reporter: Optional[ErrorReporter] = None) -> None:
    """Route a failure inside the logging machinery to the diagnostic sink"""
    context_str = context if MODULE_NAME in context else f"{MODULE_NAME} {context}"
    diagnostics.error(f"{context_str}: {err}", exc_info=err)

    if reporter:
        try:
            reporter(context_str, err)
        except Exception as report_err:
            diagnostics.warning(f"{context_str}: error reporter failed: {report_err}")


def is_application_frame(filename: str) -> bool:
    """False for interpreter internals and installed third party packages"""
    if filename.startswith('<'):
        return False
    path = os.path.abspath(filename)
    if 'site-packages' in path or 'dist-packages' in path:
        return False
    return not path.startswith(_PLATFORM_PATHS)


def parse_stacktrace(stack: str) -> str:
    """
    Reduce a formatted traceback to application frames.

    Frame headers pointing into the standard library or third party packages
    are dropped together with their indented source lines.
    """
    lines = []
    dropping = False

    for raw in stack.splitlines():
        item = raw.strip()
        if not item:
            continue

        frame = _FRAME_LINE.match(item)
        if frame:
            dropping = not is_application_frame(frame.group('filename'))
        elif not raw.startswith('    '):
            dropping = False

        if not dropping:
            lines.append(item)

    return '\n'.join(lines)


def format_stack(err: Any) -> Optional[str]:
    """Formatted traceback of an exception, or a stack string carried by a serialized error"""
    if isinstance(err, BaseException) and err.__traceback__ is not None:
        return ''.join(traceback.format_exception(type(err), err, err.__traceback__))

    stack = err.get('stack') if isinstance(err, Mapping) else getattr(err, 'stack', None)
    return stack if isinstance(stack, str) and stack else None


def error_message(err: Any) -> str:
    if isinstance(err, Mapping):
        return err.get('message') or json.dumps(err, default=str)
    if isinstance(err, BaseException):
        return getattr(err, 'message', None) or str(err) or type(err).__name__
    return str(err)


def parse_error(err: Any) -> ParsedError:
    """
    Parse an error into message, application stack trace and details.

    Details keep the full diagnostic value for system errors and only the
    message for expected client errors.
    """
    message = error_message(err)
    raw_stack = format_stack(err)
    stack = parse_stacktrace(raw_stack) if raw_stack else None

    if classify(err) is ErrorKind.SYSTEM and stack:
        details = f"{message} : {stack}"
    else:
        details = message

    return ParsedError(message, stack, details)


def safe_string(value: Optional[str]) -> Optional[str]:
    return value.replace("'", "''") if value else None


def stringify(obj: Any) -> Optional[str]:
    return safe_string(obj) if isinstance(obj, str) else json.dumps(obj, default=str)


def _as_identifier(value: Any) -> Any:
    """Path parameters arrive as strings"""
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value or None


def _request_url(request: Request) -> str:
    url = request.url.path
    if request.url.query:
        url += f"?{request.url.query}"
    return url


def request_body(request: Request) -> Any:
    """Body captured by the middleware or parsed by the route, None when empty"""
    body = getattr(request.state, 'request_body', None)
    if body is None:
        body = getattr(request, '_body', None)
    if not body:
        return None
    if isinstance(body, bytes):
        try:
            return json.loads(body)
        except ValueError:
            return body.decode('utf-8', errors='replace')
    return body


def _error_response(status_code: int, message: str) -> Response:
    return JSONResponse(status_code=status_code, content={"detail": message})


def send_api_validation_error(message: str) -> Response:
    """Send http 400 error"""
    return _error_response(HTTP_STATUS[ErrorKind.VALIDATION], message)


def send_api_authentication_error(message: str) -> Response:
    """Send http 401 error"""
    return _error_response(AUTHENTICATION_ERROR_STATUS, message)


def send_api_not_found_error(message: str) -> Response:
    """Send http 404 error"""
    return _error_response(HTTP_STATUS[ErrorKind.NOT_FOUND], message)


def send_api_system_error(message: str) -> Response:
    """Send http 500 error"""
    return _error_response(HTTP_STATUS[ErrorKind.SYSTEM], message)


def fallback_error_response(err: Any) -> Response:
    """Response used when no engine is available to handle an error"""
    kind = classify(err)
    return _error_response(HTTP_STATUS[kind], error_message(err))


class LogEngine:
    """
    One engine per owning component.

    Holds the component name, minimum level, API and SQL logging switches,
    the storage handle and the timezone used to stamp records.
    """

    def __init__(self, storage: LogStorage, settings: LoggingSettings,
                 component_name: Optional[str] = None,
                 email_sender: Optional[EmailSender] = None,
                 error_reporter: Optional[ErrorReporter] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.storage = storage
        self.settings = settings
        self.component_name = component_name or settings.component_name
        self.minimum_level = Level(settings.level)
        self.api_request_logging = settings.api_request_logging
        self.api_request_threshold_ms = settings.api_request_threshold_ms
        self.sql_query_logging = settings.sql_query_logging
        self.timezone = ZoneInfo(settings.timezone)
        self.email_sender = email_sender
        self.error_reporter = error_reporter
        self.custom_response_handler: Optional[CustomResponseHandler] = None
        self._clock = clock

    def now(self) -> datetime:
        """Current wall time in the configured timezone, stored without offset"""
        current = self._clock() if self._clock else datetime.now(self.timezone)
        if current.tzinfo is not None:
            current = current.astimezone(self.timezone).replace(tzinfo=None)
        return current

    def report_internal_error(self, context: str, err: BaseException) -> None:
        handle_internal_error(context, err, self.error_reporter)

    def report(self, context: str, err: BaseException) -> None:
        """Forward an application error to the external error tracker, if any"""
        if not self.error_reporter:
            return
        try:
            self.error_reporter(context, err)
        except Exception as report_err:
            diagnostics.warning(f"{context}: error reporter failed: {report_err}")

    def is_enabled(self, level: Level) -> bool:
        return LEVEL_PRIORITY[Level(level)] >= LEVEL_PRIORITY[self.minimum_level]

    @staticmethod
    def is_valid_log_data_format(data: Any) -> bool:
        """Validate required columns"""
        if (isinstance(data, Mapping)
                and (data.get('context') or data.get('source'))
                and (data.get('message') or data.get('err') or data.get('sql') or data.get('request_url'))):
            return True

        diagnostics.warning(
            'data format is not valid, context and either sql|message|err|request_url are required'
        )
        return False

    def write(self, level: Level, data: Mapping[str, Any]) -> None:
        """
        Write a log record.

        Calls below the minimum level are dropped silently. Invalid data is
        reported locally and never persisted. No exception leaves this method.
        """
        try:
            if not self.is_enabled(level) or not self.is_valid_log_data_format(data):
                return

            data = dict(data)
            context = data.get('source') or data.get('context')
            message = data.get('message')
            stack = data.get('stack')

            err = data.get('err')
            if err:
                if isinstance(err, BaseException):
                    self.report(str(context), err)
                err_message = error_message(err)
                if err_message:
                    message = f"{message} : {err_message}" if message else err_message
                raw_stack = format_stack(err)
                if raw_stack:
                    stack = parse_stacktrace(raw_stack)

            record = {
                'level': Level(level).value,
                'component': self.component_name,
                'context': str(context)[:CONTEXT_MAX_LENGTH],
                'agency_id': _as_identifier(data.get('agency_id')),
                'agency_program_id': _as_identifier(data.get('agency_program_id')),
                'error_code': int(data['error_code']) if data.get('error_code') else None,
                'message': safe_string(message),
                'sso_id': data.get('sso_id') or None,
                'request_method': data.get('request_method') or None,
                'request_url': data.get('request_url') or None,
                'request_body': stringify(data['request_body']) if data.get('request_body') else None,
                'response_code': str(data['response_code']) if data.get('response_code') else None,
                'response_body': stringify(data['response_body']) if data.get('response_body') else None,
                'sql': safe_string(data.get('sql')),
                'data': self._encode_data(data.get('data')),
                'stack': safe_string(stack),
                'elapsed_time': int(data['elapsed_time']) if data.get('elapsed_time') is not None else None,
                'timestamp': self.now(),
            }

            self.storage.insert_log(record)
        except Exception as err:
            self.report_internal_error('write_log', err)

    @staticmethod
    def _encode_data(value: Any) -> Optional[str]:
        if not value:
            return None
        return value if isinstance(value, str) else json.dumps(value, default=str)

    def sql_query(self, statement: str, parameters: Any = None) -> None:
        """Log a SQL statement, with any bound parameters, when SQL logging is enabled"""
        if not self.sql_query_logging:
            return

        sql = statement
        if parameters:
            if isinstance(parameters, Mapping):
                values = ', '.join(f"{key}={value!r}" for key, value in parameters.items())
            elif isinstance(parameters, (list, tuple)):
                values = ', '.join(repr(value) for value in parameters)
            else:
                values = repr(parameters)
            sql += f", REPLACEMENTS: [{values}]"

        self.write(Level.INFO, {'context': 'SQLAlchemy', 'sql': sql})

    def log_connection_protection_request(self, data: Mapping[str, Any]) -> Optional[Any]:
        """Write a connection protection audit record, returning its id"""
        try:
            values = dict(data)
            values.setdefault('timestamp', self.now())
            return self.storage.insert_connection_protection_log(values)
        except Exception as err:
            self.report_internal_error('log_connection_protection_request', err)
            return None

    def parse_error(self, err: Any) -> ParsedError:
        try:
            return parse_error(err)
        except Exception as inner_err:
            self.report_internal_error('parse_error', inner_err)
            message = str(err)
            return ParsedError(message, None, message)

    def set_custom_error_response_handler(self, handler: CustomResponseHandler) -> None:
        if callable(handler):
            self.custom_response_handler = handler

    def _system_error_response(self, request: Request, err: Any, message: str) -> Response:
        if self.custom_response_handler:
            try:
                return self.custom_response_handler(request, err, message)
            except Exception as handler_err:
                self.report_internal_error('custom_response_handler', handler_err)
        return send_api_system_error(message)

    def _handle_error(self, method_id: str, request: Request, err: Any) -> Response:
        message = self.parse_error(err).message

        try:
            kind = classify(err)
            if kind is ErrorKind.NOT_FOUND:
                return send_api_not_found_error(message)
            if kind is ErrorKind.VALIDATION:
                return send_api_validation_error(message)

            self.write(Level.ERROR, {
                'context': method_id,
                'sso_id': getattr(request.state, 'sso_id', None),
                'request_method': request.method,
                'request_url': _request_url(request),
                'request_body': request_body(request),
                'response_code': HTTP_STATUS[ErrorKind.SYSTEM],
                'message': message,
            })
            if isinstance(err, BaseException):
                self.report(method_id, err)

            return self._system_error_response(request, err, message)
        except Exception as inner_err:
            self.report_internal_error(method_id, inner_err)
            return self._system_error_response(request, err, message)

    def handle_api_exception(self, request: Request, err: Any) -> Response:
        """
        Build the client response for an exception raised by an API route.

        Not found and validation errors map to 404 and 400 without a log
        record. Anything else writes one ERROR record and answers 500 with
        the error message only.
        """
        return self._handle_error(f"{MODULE_NAME} handle_api_exception", request, err)

    def handle_result_error(self, request: Request, result: Any) -> Response:
        """Same policy as handle_api_exception for an SDK result carrying ``err``"""
        return self._handle_error(f"{MODULE_NAME} handle_result_error", request, getattr(result, 'err', result))

    def send_email(self, to: Any, subject: str, html_body: str, text_body: Optional[str] = None) -> bool:
        """Send an email through the configured sender, returning False on failure"""
        context = f"{MODULE_NAME} send_email"
        options = {'to': to, 'subject': subject}

        try:
            if self.email_sender is None:
                raise RuntimeError('no email sender configured')
            self.email_sender.send(to, subject, html_body, text_body)
            return True
        except MessageRejected as err:
            self.write(Level.ERROR, {'context': context, 'data': options, 'message': err.message})
        except Exception as err:
            self.write(Level.ERROR, {'context': context, 'data': options, 'err': err})
        return False

    def attach_sql_logging(self, engine: Any) -> None:
        """Trace statements executed on a host application's SQLAlchemy engine"""
        if engine is self.storage.engine:
            # tracing the store's own inserts would recurse
            diagnostics.warning(f"{MODULE_NAME} attach_sql_logging: refusing to trace the log store engine")
            return

        @event.listens_for(engine, 'before_cursor_execute')
        def _trace(conn, cursor, statement, parameters, context, executemany):
            self.sql_query(statement, parameters)
