"""
Problem documents for plain FastAPI routes

Routes built with handle_json_request/handle_blank_request write their own
problems. These handlers give every other route (and Starlette's own 404/405)
the same application/problem+json shape.
"""
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.datastructures import MutableHeaders
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .config import Settings, get_settings
from .errors import (
    Problem,
    ProblemJSON,
    ProblemType,
    log_problem,
    problem_or_fallback,
    problem_status,
)
from .handler import INTERNAL_ERROR_DETAIL
from .writer import ResponseWriter

logger = logging.getLogger(__name__)


class HTTPExceptionProblem(Problem):
    """A Starlette HTTPException, keeping its status, detail and headers"""

    def __init__(self, exc: StarletteHTTPException):
        self.exc = exc
        super().__init__(f"HTTP {exc.status_code}: {exc.detail}")
        self.__cause__ = exc

    def problem_type(self) -> ProblemType:
        return problem_status(self.exc.status_code)

    def problem_detail(self) -> str:
        return str(self.exc.detail)

    def set_problem_headers(self, headers: MutableHeaders) -> None:
        for key, value in (self.exc.headers or {}).items():
            headers[key] = value


class RequestValidationProblem(Problem):
    """422: FastAPI rejected the request parameters or body"""

    def __init__(self, exc: RequestValidationError):
        self.errors = jsonable_encoder(exc.errors())
        super().__init__(f"Request validation failed: {len(self.errors)} error(s)")

    def problem_type(self) -> ProblemType:
        return problem_status(422)

    def problem_detail(self) -> str:
        return "Request validation failed"

    def problem_data(self) -> dict[str, Any]:
        return {"errors": self.errors}


def problem_response(problem: Problem, settings: Settings | None = None) -> Response:
    """Log a problem and render it as a finished response"""
    settings = settings or get_settings()
    log_problem(logger, problem)
    w = ResponseWriter()
    ProblemJSON(problem).write_http_response(w, settings.json_options)
    return w.to_response()


def register_problem_handlers(app: FastAPI, settings: Settings | None = None) -> None:
    """Register problem document handlers on the FastAPI application.

    Args:
        app: The FastAPI application instance.
        settings: Configuration used to format problem bodies.
    """

    @app.exception_handler(Problem)
    async def handle_problem(_request: Request, exc: Problem) -> Response:
        """Problems raised from plain routes are written as-is."""
        return problem_response(exc, settings)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(_request: Request, exc: StarletteHTTPException) -> Response:
        """Convert HTTPException (including routing 404/405) to a problem."""
        return problem_response(HTTPExceptionProblem(exc), settings)

    @app.exception_handler(RequestValidationError)
    async def handle_validation(_request: Request, exc: RequestValidationError) -> Response:
        """Convert pydantic request validation errors to a 422 problem."""
        return problem_response(RequestValidationProblem(exc), settings)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception) -> Response:
        """Catch-all: surface a wrapped problem if there is one, else a generic 500."""
        problem = problem_or_fallback(exc, problem_status(500), "", INTERNAL_ERROR_DETAIL)
        return problem_response(problem, settings)
