"""
System endpoints - health and service info
"""
from starlette.requests import Request

from ..core.config import Settings, get_settings
from ..core.handler import handle_blank_request
from ..core.logging_config import EndpointLogger
from ..core.responses import JSONBody, as_json_body
from ..schemas.system import HealthResponse, ServiceInfo

VERSION = "0.1.0"


def health_check(request: Request, log: EndpointLogger) -> JSONBody[HealthResponse]:
    """
    Liveness check

    The framework holds no connections of its own, so reaching this
    handler is the whole check.
    """
    settings: Settings = request.app.state.settings
    return as_json_body(
        HealthResponse(status="healthy", environment=settings.ENVIRONMENT, version=VERSION)
    )


async def service_info(request: Request, log: EndpointLogger) -> JSONBody[ServiceInfo]:
    """Root endpoint"""
    settings: Settings = request.app.state.settings
    return as_json_body(
        ServiceInfo(
            service=settings.API_TITLE,
            version=VERSION,
            environment=settings.ENVIRONMENT,
            docs=request.app.docs_url,
        )
    )


def build_routes(settings: Settings | None = None) -> list[tuple[str, object]]:
    """(path, handler) pairs for the system endpoints, all GET"""
    settings = settings or get_settings()
    return [
        ("/health", handle_blank_request(health_check, name="health_check", settings=settings)),
        ("/", handle_blank_request(service_info, name="service_info", settings=settings)),
    ]
