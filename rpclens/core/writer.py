"""
Outgoing response buffer that response envelopes write themselves to
"""
import logging

from starlette.datastructures import MutableHeaders
from starlette.responses import Response

logger = logging.getLogger(__name__)


class ResponseWriter:
    """
    Header-then-status-then-body response writer

    Headers may be mutated freely until write_header() is called, at which
    point they are snapshotted; later header changes never reach the client.
    """

    def __init__(self):
        self.headers = MutableHeaders()
        self.status_code: int | None = None
        self._sent_headers: list[tuple[bytes, bytes]] = []
        self._body = bytearray()

    @property
    def wrote_header(self) -> bool:
        return self.status_code is not None

    def write_header(self, status_code: int) -> None:
        """Emit the status line and freeze the current headers"""
        if self.status_code is not None:
            logger.warning(
                "Superfluous write_header(%d) call, status %d already written",
                status_code,
                self.status_code,
            )
            return
        self.status_code = status_code
        self._sent_headers = list(self.headers.raw)

    def write(self, data: bytes) -> int:
        """Append body bytes, writing a 200 status first if none was written"""
        if self.status_code is None:
            self.write_header(200)
        self._body += data
        return len(data)

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    def to_response(self) -> Response:
        """Build the Starlette response carrying exactly what was written"""
        if self.status_code is None:
            self.write_header(200)
        response = Response(content=self.body, status_code=self.status_code)
        response.raw_headers = list(self._sent_headers)
        return response
