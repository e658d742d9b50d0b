"""
HTTP request/response logging for Starlette and FastAPI applications
"""

import asyncio
import json
import time
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING, Any, Iterable, List, Optional

from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .engine import Level, LogEngine, diagnostics, handle_internal_error
from .errors import TaggedError

if TYPE_CHECKING:
    from .interface import LoggerInterface

NOT_FOUND_STATUS = 404


class Requester(str, Enum):
    ADMIN = 'admin portal'
    TEST_CLIENT = 'postman'
    APP = 'app'


class CompletedResponse:
    """Status and headers of a response whose body has been sent"""

    def __init__(self, status_code: int, headers: Optional[List[tuple]] = None):
        self.status_code = status_code
        self.headers = headers or []

    @property
    def content_type(self) -> str:
        for name, value in self.headers:
            if name.lower() == b'content-type':
                return value.decode('latin-1')
        return ''


def classify_requester(request: Request) -> Requester:
    if request.query_params.get('is_admin') == 'true':
        return Requester.ADMIN
    if request.headers.get('postman-token'):
        return Requester.TEST_CLIENT
    return Requester.APP


class RequestResponseLogger:
    """Decide per request whether the completed response is worth a log record"""

    def __init__(self, engine: LogEngine, health_check_paths: Iterable[str] = ('/status_auth',)):
        self.engine = engine
        self.health_check_paths = tuple(health_check_paths)

    def attach(self, request: Request) -> None:
        """Stamp the arrival time and install the per request error handlers"""
        try:
            request.state.arrival_time = time.monotonic()
            request.state.exception_handler = partial(self.engine.handle_api_exception, request)
            request.state.result_error_handler = partial(self.engine.handle_result_error, request)
        except Exception as err:
            self.engine.report_internal_error('middleware.attach', err)

    def should_log(self, status_code: int, path: str, elapsed_ms: Optional[int]) -> bool:
        if status_code == NOT_FOUND_STATUS:
            return False
        if path.endswith(self.health_check_paths):
            return False
        if self.engine.api_request_logging:
            return True
        # slow requests are surfaced even with API logging off
        return elapsed_ms is not None and elapsed_ms > self.engine.api_request_threshold_ms

    def api_response_hook(self, body: Any, request: Request, response: Any) -> Any:
        """Log the request/response pair if it qualifies, returning body untouched"""
        try:
            elapsed_ms = None
            arrival_time = getattr(request.state, 'arrival_time', None)
            if arrival_time is not None:
                elapsed_ms = int((time.monotonic() - arrival_time) * 1000)

            if self.should_log(response.status_code, request.url.path, elapsed_ms):
                path_params = request.path_params or {}
                request_body = getattr(request.state, 'request_body', None)

                self.engine.write(Level.INFO, {
                    'context': f"API : {classify_requester(request).value}",
                    'sso_id': getattr(request.state, 'sso_id', None),
                    'agency_id': path_params.get('agency_id'),
                    'agency_program_id': path_params.get('agency_program_id'),
                    'request_method': request.method,
                    'request_url': request.url.path,
                    'request_body': _decode(request_body),
                    'response_code': response.status_code,
                    'response_body': body,
                    'elapsed_time': elapsed_ms,
                })
        except Exception as err:
            self.engine.report_internal_error('api_request_response_logger', err)

        return body


def _decode(body: Optional[bytes]) -> Any:
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        return body.decode('utf-8', errors='replace')


class MiddlewareHooks:
    """Middleware entry points, pass-through when the logger failed to initialize"""

    def __init__(self, request_logger: Optional[RequestResponseLogger] = None):
        self.request_logger = request_logger

    def attach(self, request: Request) -> None:
        if self.request_logger:
            self.request_logger.attach(request)

    def api_response_hook(self, body: Any, request: Request, response: Any) -> Any:
        if self.request_logger:
            return self.request_logger.api_response_hook(body, request, response)
        return body


class RequestLoggingMiddleware:
    """
    ASGI middleware calling ``attach`` when a request arrives and
    ``api_response_hook`` once its response body has been sent.

    Request and response bodies are captured as they stream through, so
    neither the route nor the client sees any difference.
    """

    def __init__(self, app: ASGIApp, logger: "LoggerInterface"):
        self.app = app
        self.logger = logger

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope['type'] != 'http':
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        self.logger.middleware.attach(request)

        request_chunks: List[bytes] = []
        response_chunks: List[bytes] = []
        started: dict = {}

        async def receive_wrapper() -> Message:
            message = await receive()
            if message['type'] == 'http.request':
                request_chunks.append(message.get('body', b''))
                if not message.get('more_body', False):
                    request.state.request_body = b''.join(request_chunks)
            return message

        async def send_wrapper(message: Message) -> None:
            await send(message)

            if message['type'] == 'http.response.start':
                response = CompletedResponse(message['status'], list(message.get('headers', [])))
                started['response'] = response
                # only JSON bodies are logged, so nothing else is buffered
                started['capture'] = 'json' in response.content_type
            elif message['type'] == 'http.response.body':
                if started.get('capture'):
                    response_chunks.append(message.get('body', b''))
                if not message.get('more_body', False):
                    # the insert is blocking, keep it off the event loop
                    await asyncio.to_thread(self._completed, request, started, response_chunks)

        await self.app(scope, receive_wrapper, send_wrapper)

    def _completed(self, request: Request, started: dict, chunks: List[bytes]) -> None:
        try:
            response = started.get('response') or CompletedResponse(500)
            body = _decode(b''.join(chunks)) if started.get('capture') else None
            self.logger.middleware.api_response_hook(body, request, response)
        except Exception as err:
            handle_internal_error('RequestLoggingMiddleware', err)


def install_logging(app: Any, logger: "LoggerInterface") -> None:
    """
    Add request/response logging and route unhandled exceptions through
    the logger's API exception handler.
    """
    app.add_middleware(RequestLoggingMiddleware, logger=logger)

    async def exception_handler(request: Request, exc: Exception):
        return await asyncio.to_thread(logger.handle_api_exception, request, exc)

    # tagged client errors are answered inside the middleware stack, everything
    # else by the outermost server error handler
    app.add_exception_handler(TaggedError, exception_handler)
    app.add_exception_handler(Exception, exception_handler)
    diagnostics.debug(f"request logging installed for {logger.component_name}")
