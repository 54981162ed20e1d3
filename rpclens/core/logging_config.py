"""
Structured logging configuration

Records are stamped with the correlation ID of the request being served, so
the single record a handler writes per request can be tied back to the
caller's X-Correlation-Id.
"""
import logging
import sys
import uuid
from contextvars import ContextVar
from pythonjsonlogger import jsonlogger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

CORRELATION_HEADER = "X-Correlation-Id"

JSON_LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s %(correlation_id)s"
TEXT_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(correlation_id)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """Correlation ID of the current request, "" outside a request"""
    return _correlation_id.get()


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a correlation ID for the duration of each request and echoes it back"""

    def __init__(self, app, *, header_name: str = CORRELATION_HEADER) -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next):
        # blank or missing IDs are replaced
        correlation_id = request.headers.get(self.header_name, "").strip() or uuid.uuid4().hex
        request.state.correlation_id = correlation_id

        token = _correlation_id.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            _correlation_id.reset(token)

        response.headers[self.header_name] = correlation_id
        return response


class CorrelationIdFilter(logging.Filter):
    """Stamp every record with the correlation ID of the request being served"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id() or "-"
        return True


class EndpointLogger(logging.LoggerAdapter):
    """Logger bound to one endpoint name

    Unlike a plain LoggerAdapter, per-call ``extra`` is merged with the bound
    fields instead of replacing it.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def setup_logging(level: str = "INFO", json_logs: bool = True):
    """
    Configure the root logger

    Features:
    - JSON-formatted logs (python-json-logger) or a plain text fallback
    - Every record carries the request correlation_id
    - Outputs to stdout for container environments
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if json_logs:
        formatter = jsonlogger.JsonFormatter(JSON_LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    else:
        formatter = logging.Formatter(TEXT_LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())
    root_logger.addHandler(handler)

    # Silence noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return root_logger
