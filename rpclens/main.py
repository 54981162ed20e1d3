"""
rpclens - Main Application
"""
import logging
from fastapi import FastAPI

from .api import system
from .core.config import Settings, get_settings
from .core.exception_handlers import register_problem_handlers
from .core.logging_config import CorrelationIdMiddleware, setup_logging

settings = get_settings()

# Setup logging
setup_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application with problem handling and system routes wired in"""
    settings = settings or get_settings()

    app = FastAPI(title=settings.API_TITLE, version=system.VERSION)
    app.state.settings = settings

    app.add_middleware(CorrelationIdMiddleware)
    register_problem_handlers(app, settings)

    for path, handler in system.build_routes(settings):
        app.add_route(path, handler, methods=["GET"], include_in_schema=False)

    logger.info(
        "rpclens app created",
        extra={
            "environment": settings.ENVIRONMENT,
            "allow_blank_content_type": settings.ALLOW_BLANK_CONTENT_TYPE,
        },
    )
    return app


app = create_app(settings)
