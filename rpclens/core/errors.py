"""
RFC 7807 Problem Details for JSON HTTP APIs

https://datatracker.ietf.org/doc/html/rfc7807

A Problem is an exception that knows how to describe itself to a client.
It is raised where the failure is detected, travels up the stack like any
other exception, and is turned into an application/problem+json response
exactly once, at the HTTP boundary, by ProblemJSON.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from starlette.datastructures import MutableHeaders

from .codec import ResponseEncodingError, encode_json
from .config import JSONOptions
from .mediatype import PROBLEM_JSON_MEDIA_TYPE
from .responses import HTTPResponse
from .writer import ResponseWriter

# Members every problem document owns; problem data may not shadow them
RESERVED_MEMBERS = frozenset({"title", "status", "type", "instance", "detail"})


def log_level_for_status(status: int) -> int:
    """403 and 502 are worth a warning, other 5xx are errors, the rest is noise"""
    if status in (403, 502):
        return logging.WARNING
    if status >= 500:
        return logging.ERROR
    return logging.DEBUG


def status_title(status: int) -> str:
    """Standard reason phrase, or "" for an unregistered code"""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


class ProblemType(BaseModel):
    """
    Class-level metadata of a problem

    Extends an HTTP status code with an optional URI for further specificity.
    Title is descriptive text but should be consistent for a given problem type.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    status: int = Field(ge=100, le=599)
    uri: str = Field(default="", serialization_alias="type")
    log_level: int = Field(default=logging.DEBUG, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _derive_log_level(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("log_level") is not None:
            return data
        data = {key: value for key, value in data.items() if key != "log_level"}
        status = data.get("status")
        if isinstance(status, int):
            data["log_level"] = log_level_for_status(status)
        return data


def problem_status(status: int, *, log_level: int | None = None) -> ProblemType:
    """ProblemType for an HTTP status code with no further specificity"""
    return ProblemType(title=status_title(status), status=status, log_level=log_level)


class Problem(Exception, ABC):
    """
    An error that can be returned from an HTTP API

    str(problem) is the internal message that goes to the log; the detail is
    what the client sees. Subclasses must provide problem_type() and
    problem_detail(), or instantiating them raises TypeError;
    everything else defaults to empty.
    """

    def __new__(cls, *args: Any, **kwargs: Any):
        # BaseException.__new__ skips the ABC check, so repeat it here
        if cls.__abstractmethods__:
            missing = ", ".join(sorted(cls.__abstractmethods__))
            raise TypeError(f"Can't instantiate problem {cls.__name__} without {missing}")
        return super().__new__(cls, *args, **kwargs)

    @abstractmethod
    def problem_type(self) -> ProblemType:
        """Type of error including the status code"""

    def problem_instance(self) -> str:
        """Optional URI identifying this occurrence, may be blank"""
        return ""

    @abstractmethod
    def problem_detail(self) -> str:
        """Human-readable message returned to the client"""

    def set_problem_headers(self, headers: MutableHeaders) -> None:
        """Set any headers required for the response"""

    def problem_data(self) -> dict[str, Any]:
        """Additional members of the response body, must be JSON serializable"""
        return {}

    def error_data(self) -> dict[str, Any]:
        """Additional data for the log record only"""
        return {}


class BasicProblem(Problem):
    """Generic problem: a formatted message and optionally a wrapped error"""

    def __init__(
        self,
        ptype: ProblemType,
        detail: str,
        *,
        instance: str = "",
        internal_message: str | None = None,
        wrapped: BaseException | None = None,
    ):
        self.ptype = ptype
        self.instance = instance
        self.detail = detail
        self.internal_message = detail if internal_message is None else internal_message
        super().__init__(self.internal_message)
        if wrapped is not None:
            self.__cause__ = wrapped

    @property
    def wrapped_error(self) -> BaseException | None:
        return self.__cause__

    def __str__(self) -> str:
        return self.internal_message

    def problem_type(self) -> ProblemType:
        return self.ptype

    def problem_instance(self) -> str:
        return self.instance

    def problem_detail(self) -> str:
        return self.detail


def problemf(ptype: ProblemType, instance: str, fmt: str, *args: Any) -> BasicProblem:
    """
    Build a BasicProblem from a %-style format

    The first exception among args becomes the problem's __cause__, so it can
    still be inspected; the client only ever sees the formatted text.

        problemf(problem_status(400), "", "invalid request: %s", err)
    """
    message = fmt % args if args else fmt
    wrapped = next((arg for arg in args if isinstance(arg, BaseException)), None)
    return BasicProblem(ptype, message, instance=instance, wrapped=wrapped)


def find_problem(err: BaseException | None) -> Problem | None:
    """Depth-first search of err, its __cause__ chain and exception group members"""
    stack = [err]
    seen: set[int] = set()
    while stack:
        current = stack.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        if isinstance(current, Problem):
            return current

        children: list[BaseException | None] = []
        if isinstance(current, BaseExceptionGroup):
            children.extend(current.exceptions)
        children.append(current.__cause__)
        stack.extend(reversed(children))
    return None


def problem_or_fallback(
    err: BaseException,
    fallback_type: ProblemType,
    fallback_instance: str,
    fallback_detail: str,
) -> Problem:
    """
    Surface the most specific problem available

    If err is (or wraps) a Problem, that problem is returned unchanged.
    Otherwise a BasicProblem is built from the fallback values, keeping err
    as the cause and its message in the log text only.
    """
    problem = find_problem(err)
    if problem is not None:
        return problem

    return BasicProblem(
        fallback_type,
        fallback_detail,
        instance=fallback_instance,
        internal_message=f"{fallback_detail}: {err}",
        wrapped=err,
    )


def log_problem(log: logging.Logger | logging.LoggerAdapter, problem: Problem) -> None:
    """Write exactly one log record for a problem at its type's log level"""
    ptype = problem.problem_type()
    cause = problem.__cause__ if ptype.log_level >= logging.ERROR else None
    log.log(
        ptype.log_level,
        str(problem),
        exc_info=cause,
        extra={
            "status": ptype.status,
            "title": ptype.title,
            "problem_type": ptype.uri,
            "instance": problem.problem_instance(),
            "detail": problem.problem_detail(),
            "error_data": problem.error_data() or {},
        },
    )


@dataclass(frozen=True)
class ProblemJSON(HTTPResponse):
    """Writes a Problem as an application/problem+json response"""

    problem: Problem

    def document(self) -> dict[str, Any]:
        ptype = self.problem.problem_type()
        document = ptype.model_dump(by_alias=True)
        if not document.get("type"):
            document.pop("type", None)

        instance = self.problem.problem_instance()
        if instance:
            document["instance"] = instance
        document["detail"] = self.problem.problem_detail()

        for key, value in (self.problem.problem_data() or {}).items():
            if key in RESERVED_MEMBERS:
                raise ResponseEncodingError(
                    f"problem data member {key!r} collides with a standard problem member"
                )
            document[key] = value
        return document

    def raw_body(self, options: JSONOptions | None = None) -> bytes:
        return encode_json(self.document(), options)

    def write_http_response(self, w: ResponseWriter, options: JSONOptions | None = None) -> None:
        """
        Write the problem as an HTTP response

        Raises ResponseEncodingError, before anything is written, if
        problem_data() holds values that cannot be serialized.
        """
        body = self.raw_body(options)

        self.problem.set_problem_headers(w.headers)
        w.headers["Content-Type"] = PROBLEM_JSON_MEDIA_TYPE
        w.headers["Content-Length"] = str(len(body))
        w.write_header(self.problem.problem_type().status)

        w.write(body)
