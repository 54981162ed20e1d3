"""
Generic handler adapter: typed endpoint functions as ASGI request handlers

    async def create_widget(request: Request, body: WidgetIn, log) -> JSONBody[WidgetOut]:
        ...
        return JSONBody(status=201, body=widget)

    routes = [Route("/widgets", handle_json_request(create_widget, WidgetIn), methods=["POST"])]

Endpoints signal failure by raising a Problem. Any other exception is
escalated into a 500 problem with problem_or_fallback, so every request
gets exactly one response and one log record.
"""
import functools
import inspect
import logging
from typing import Any, Awaitable, Callable, Generic, TypeVar

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from .config import Settings, get_settings
from .decoding import get_json_body
from .errors import Problem, ProblemJSON, log_problem, problem_or_fallback, problem_status
from .logging_config import EndpointLogger
from .responses import HTTPResponse
from .writer import ResponseWriter

logger = logging.getLogger(__name__)

S = TypeVar("S")

JSONEndpoint = Callable[[Request, S, EndpointLogger], HTTPResponse | Awaitable[HTTPResponse]]
BlankEndpoint = Callable[[Request, EndpointLogger], HTTPResponse | Awaitable[HTTPResponse]]

INTERNAL_ERROR_DETAIL = "Internal Server Error"


def endpoint_name(endpoint: Callable[..., Any]) -> str:
    """module.qualname of a function, looking through partials and decorators"""
    while isinstance(endpoint, functools.partial):
        endpoint = endpoint.func
    endpoint = inspect.unwrap(endpoint)

    qualname = getattr(endpoint, "__qualname__", None) or type(endpoint).__qualname__
    module = getattr(endpoint, "__module__", None)
    return f"{module}.{qualname}" if module else qualname


def _is_async(endpoint: Callable[..., Any]) -> bool:
    while isinstance(endpoint, functools.partial):
        endpoint = endpoint.func
    return inspect.iscoroutinefunction(endpoint) or inspect.iscoroutinefunction(
        getattr(endpoint, "__call__", None)
    )


class _BaseHandler:
    """Shared write-and-log plumbing; subclasses implement respond()"""

    def __init__(self, name: str, endpoint: Callable[..., Any], settings: Settings | None):
        self.name = name
        self.endpoint = endpoint
        self.settings = settings or get_settings()
        self._endpoint_is_async = _is_async(endpoint)

    async def _call_endpoint(self, *args: Any) -> HTTPResponse:
        if self._endpoint_is_async:
            return await self.endpoint(*args)
        return await run_in_threadpool(self.endpoint, *args)

    def _write_problem(self, log: EndpointLogger, problem: Problem) -> Response:
        log_problem(log, problem)
        w = ResponseWriter()
        ProblemJSON(problem).write_http_response(w, self.settings.json_options)
        return w.to_response()

    async def respond(self, request: Request, log: EndpointLogger) -> HTTPResponse:
        raise NotImplementedError

    async def handle(self, request: Request) -> Response:
        """Serve one request, always producing exactly one response"""
        log = EndpointLogger(logger, {"endpoint": self.name})

        try:
            resp = await self.respond(request, log)
        except Exception as e:
            problem = problem_or_fallback(e, problem_status(500), "", INTERNAL_ERROR_DETAIL)
            return self._write_problem(log, problem)

        if not isinstance(resp, HTTPResponse):
            raise TypeError(
                f"endpoint {self.name} returned {type(resp).__name__}, expected an HTTPResponse"
            )

        log.debug("Finished calling %s", self.name)
        w = ResponseWriter()
        resp.write_http_response(w, self.settings.json_options)
        return w.to_response()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive, send)
        response = await self.handle(request)
        await response(scope, receive, send)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class JSONBodyHandler(_BaseHandler, Generic[S]):
    """Decodes a JSON body of type S, then calls endpoint(request, body, log)"""

    def __init__(
        self,
        name: str,
        endpoint: JSONEndpoint,
        body_type: type[S] | Any,
        settings: Settings | None = None,
    ):
        super().__init__(name, endpoint, settings)
        self.body_type = body_type

    async def respond(self, request: Request, log: EndpointLogger) -> HTTPResponse:
        body = await get_json_body(request, self.body_type, settings=self.settings)
        return await self._call_endpoint(request, body, log)


class BlankBodyHandler(_BaseHandler):
    """Ignores the request body and calls endpoint(request, log)"""

    async def respond(self, request: Request, log: EndpointLogger) -> HTTPResponse:
        return await self._call_endpoint(request, log)


def handle_json_request(
    endpoint: JSONEndpoint,
    body_type: type[S] | Any,
    *,
    name: str | None = None,
    settings: Settings | None = None,
) -> JSONBodyHandler[S]:
    """Wrap an endpoint taking a decoded JSON body as an ASGI handler"""
    return JSONBodyHandler(
        name=name or endpoint_name(endpoint),
        endpoint=endpoint,
        body_type=body_type,
        settings=settings,
    )


def handle_blank_request(
    endpoint: BlankEndpoint,
    *,
    name: str | None = None,
    settings: Settings | None = None,
) -> BlankBodyHandler:
    """Wrap an endpoint that takes no request body as an ASGI handler"""
    return BlankBodyHandler(name=name or endpoint_name(endpoint), endpoint=endpoint, settings=settings)
