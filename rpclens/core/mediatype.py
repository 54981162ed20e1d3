"""
Media type parsing for request content negotiation (RFC 7231 section 3.1.1.1)
"""
import re

JSON_MEDIA_TYPE = "application/json"
PROBLEM_JSON_MEDIA_TYPE = "application/problem+json"

_TOKEN = r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+"
_QUOTED_STRING = r'"(?:[^"\\]|\\.)*"'

# A bare token is tolerated as a type, e.g. "attachment"
_MEDIA_TYPE = re.compile(rf"{_TOKEN}(?:/{_TOKEN})?")
_PARAMETER = re.compile(
    rf";[ \t]*(?P<key>{_TOKEN})[ \t]*=[ \t]*(?P<value>{_TOKEN}|{_QUOTED_STRING})"
)
_QUOTED_PAIR = re.compile(r"\\(.)")


class MediaTypeError(ValueError):
    """Content-Type header could not be parsed"""


def parse_media_type(value: str) -> tuple[str, dict[str, str]]:
    """
    Split a Content-Type value into its base type and parameters

    The base type and parameter names are lower-cased; parameter values are
    returned unquoted with their original case.

    Raises:
        MediaTypeError: empty value, malformed type, malformed or duplicate parameter
    """
    base, separator, rest = value.partition(";")
    media_type = base.strip().lower()
    if not media_type:
        raise MediaTypeError("no media type")
    if not _MEDIA_TYPE.fullmatch(media_type):
        raise MediaTypeError(f"invalid media type: {media_type!r}")

    params: dict[str, str] = {}
    rest = separator + rest
    while rest.strip():
        rest = rest.lstrip()
        if rest.rstrip() == ";":
            # trailing semicolons are ignored
            break

        match = _PARAMETER.match(rest)
        if match is None:
            raise MediaTypeError(f"invalid media parameter: {rest!r}")

        key = match["key"].lower()
        param_value = match["value"]
        if param_value.startswith('"'):
            param_value = _QUOTED_PAIR.sub(r"\1", param_value[1:-1])
        if key in params:
            raise MediaTypeError(f"duplicate parameter name: {key!r}")

        params[key] = param_value
        rest = rest[match.end():]

    return media_type, params
