"""
Response envelopes: everything an endpoint can hand back on success
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Generic, Mapping, TypeVar

from .codec import encode_json
from .config import JSONOptions
from .mediatype import JSON_MEDIA_TYPE
from .writer import ResponseWriter

T = TypeVar("T")


class HTTPResponse(ABC):
    """A value that can write itself as a complete HTTP response"""

    @abstractmethod
    def write_http_response(self, w: ResponseWriter, options: JSONOptions | None = None) -> None:
        """
        Write headers, then the status line, then the body

        Raises:
            ResponseEncodingError: the body cannot be serialized
        """


@dataclass(frozen=True)
class JSONBody(HTTPResponse, Generic[T]):
    """Typed JSON success body"""

    status: int
    body: T
    extra_headers: Mapping[str, str] = field(default_factory=dict)

    def write_http_response(self, w: ResponseWriter, options: JSONOptions | None = None) -> None:
        raw_body = encode_json(self.body, options)

        for key, value in self.extra_headers.items():
            w.headers[key] = value
        w.headers["Content-Type"] = JSON_MEDIA_TYPE
        w.headers["Content-Length"] = str(len(raw_body))

        w.write_header(self.status)
        w.write(raw_body)


def as_json_body(body: T) -> JSONBody[T]:
    """200 OK with the given body and no extra headers"""
    return JSONBody(status=200, body=body)


@dataclass(frozen=True)
class NoContent(HTTPResponse):
    """204 with an empty body"""

    def write_http_response(self, w: ResponseWriter, options: JSONOptions | None = None) -> None:
        w.headers["Content-Type"] = JSON_MEDIA_TYPE
        w.headers["Content-Length"] = "0"
        w.write_header(204)


@dataclass(frozen=True)
class HeadersOnly(HTTPResponse):
    """Status and headers with an empty body, e.g. 201 + Location"""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)

    def write_http_response(self, w: ResponseWriter, options: JSONOptions | None = None) -> None:
        for key, value in self.headers.items():
            w.headers[key] = value
        w.headers["Content-Type"] = JSON_MEDIA_TYPE
        w.headers["Content-Length"] = "0"
        w.write_header(self.status)
