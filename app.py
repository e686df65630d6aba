"""Litestar application factory.

Run with:
  uvicorn app:create_app --factory --port 3000
"""

import logging

from advanced_alchemy.extensions.litestar import (
    AsyncSessionConfig,
    EngineConfig,
    SQLAlchemyAsyncConfig,
    SQLAlchemyPlugin,
)
from litestar import Litestar, Request, Response
from litestar.config.cors import CORSConfig
from litestar.datastructures import State
from litestar.exceptions import HTTPException
from litestar.logging import LoggingConfig
from litestar.static_files import create_static_files_router
from sqlalchemy.exc import SQLAlchemyError

from config import Settings, get_settings
from controllers.auth import AuthController
from controllers.chats import ChatController
from controllers.completion import AgentCompletionGateway, CompletionGateway
from controllers.errors import FreeSeekError, PersistenceError
from controllers.health import HealthController

logger = logging.getLogger(__name__)


def _error_response(message: str, status_code: int) -> Response:
    return Response(content={"error": message}, status_code=status_code)


def handle_app_error(request: Request, exc: FreeSeekError) -> Response:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return _error_response(str(exc), exc.status_code)


def handle_http_exception(request: Request, exc: HTTPException) -> Response:
    return _error_response(exc.detail, exc.status_code)


def handle_database_error(request: Request, exc: SQLAlchemyError) -> Response:
    logger.error("%s %s hit a database error", request.method, request.url.path, exc_info=exc)
    error = PersistenceError()
    return _error_response(str(error), error.status_code)


def create_app(
    settings: Settings | None = None, *, gateway: CompletionGateway | None = None
) -> Litestar:
    settings = settings or get_settings()
    settings.uploads.directory.mkdir(parents=True, exist_ok=True)

    alchemy_config = SQLAlchemyAsyncConfig(
        connection_string=settings.database.url,
        before_send_handler="autocommit",
        session_config=AsyncSessionConfig(expire_on_commit=False),
        engine_config=EngineConfig(echo=settings.database.echo),
        create_all=settings.database.create_all,
    )
    if gateway is None:
        gateway = AgentCompletionGateway(
            settings=settings.completion, upload_dir=settings.uploads.directory
        )

    return Litestar(
        route_handlers=[
            HealthController,
            AuthController,
            ChatController,
            create_static_files_router(
                path=settings.uploads.url_prefix,
                directories=[settings.uploads.directory],
            ),
        ],
        plugins=[SQLAlchemyPlugin(config=alchemy_config)],
        cors_config=CORSConfig(allow_origins=settings.cors_origins),
        exception_handlers={
            FreeSeekError: handle_app_error,
            HTTPException: handle_http_exception,
            SQLAlchemyError: handle_database_error,
        },
        logging_config=LoggingConfig(
            root={"level": settings.log_level, "handlers": ["queue_listener"]},
        ),
        state=State(
            {
                "settings": settings,
                "gateway": gateway,
                "session_factory": alchemy_config.create_session_maker(),
            }
        ),
        debug=settings.debug,
    )
