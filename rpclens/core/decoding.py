"""
Content negotiation and JSON request body decoding
"""
from typing import Any, TypeVar

from pydantic import ValidationError
from starlette.datastructures import MutableHeaders
from starlette.requests import Request

from .codec import decode_json, type_adapter
from .config import Settings, get_settings
from .errors import Problem, ProblemType, problem_status, problemf
from .mediatype import JSON_MEDIA_TYPE, MediaTypeError, parse_media_type

T = TypeVar("T")


class UnsupportedMediaTypeError(Problem):
    """415: the request body is not in a media type this endpoint reads"""

    def __init__(self, accepted: list[str], received: str, want_utf8: bool = False):
        self.accepted = list(accepted)
        self.received = received
        self.want_utf8 = want_utf8
        super().__init__(
            f"Unsupported Media Type: expecting {', '.join(self.accepted)}, received {received}"
        )

    def problem_type(self) -> ProblemType:
        return problem_status(415)

    def problem_detail(self) -> str:
        return f"Accepts {', '.join(self.accepted)}, received {self.received}"

    def problem_data(self) -> dict[str, Any]:
        return {"accepted_types": self.accepted, "received_type": self.received}

    def set_problem_headers(self, headers: MutableHeaders) -> None:
        headers["Accept"] = ",".join(self.accepted)
        if self.want_utf8:
            headers["Accept-Charset"] = "utf-8"


def check_content_type(content_type: str, settings: Settings) -> None:
    """
    Reject anything but a parameterless application/json

    A charset parameter is refused even when it names UTF-8, unless
    ALLOW_UTF8_CHARSET is set; other charsets are refused regardless.

    Raises:
        UnsupportedMediaTypeError
    """
    try:
        base_type, params = parse_media_type(content_type)
    except MediaTypeError as e:
        raise UnsupportedMediaTypeError(
            accepted=[JSON_MEDIA_TYPE],
            received=content_type,
            want_utf8=True,
        ) from e

    if base_type != JSON_MEDIA_TYPE:
        raise UnsupportedMediaTypeError(
            accepted=[JSON_MEDIA_TYPE],
            received=base_type,
            want_utf8=True,
        )

    charset = params.get("charset", "")
    if charset and not (settings.ALLOW_UTF8_CHARSET and charset.lower() == "utf-8"):
        raise UnsupportedMediaTypeError(
            accepted=[f"{JSON_MEDIA_TYPE}; charset=utf-8"],
            received=content_type,
            want_utf8=True,
        )


async def get_json_body(
    request: Request,
    body_type: type[T] | Any,
    *,
    settings: Settings | None = None,
) -> T:
    """
    Negotiate the request media type and decode its JSON body

    Negotiation is skipped only when the request has no Content-Type and
    ALLOW_BLANK_CONTENT_TYPE is set.

    Raises:
        UnsupportedMediaTypeError: Content-Type missing, malformed or not JSON
        BasicProblem: 400, body is not valid JSON for body_type
    """
    settings = settings or get_settings()

    content_type = request.headers.get("content-type", "")
    if content_type or not settings.ALLOW_BLANK_CONTENT_TYPE:
        check_content_type(content_type, settings)

    raw = await request.body()
    try:
        return decode_json(raw, type_adapter(body_type))
    except ValidationError as e:
        raise problemf(problem_status(400), "", "Error decoding JSON body: %s", e) from e
