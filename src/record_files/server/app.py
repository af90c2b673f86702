"""ASGI application for standalone deployment."""

import contextlib
from collections.abc import AsyncIterator, Mapping

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware

from record_files.config import Config
from record_files.observability import configure_logging
from record_files.server.middleware import RequestContextMiddleware
from record_files.server.routes import create_routes
from record_files.service import FileAccessService


def create_app(
    services: Mapping[str, FileAccessService],
    config: Config | None = None,
) -> Starlette:
    """Create the ASGI application.

    Configures package logging from `config.logging`. Services are closed
    when the application shuts down.

    Args:
        services: File access services keyed by table name
        config: Configuration; defaults apply when omitted

    Returns:
        Starlette application
    """
    config = config or Config()
    configure_logging(config.logging.level, config.logging.format)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        try:
            yield
        finally:
            for service in services.values():
                await service.close()

    # Executed outermost first: CORS -> request context -> route handler
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=config.server.cors_origins or ["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        ),
        Middleware(RequestContextMiddleware),
    ]

    return Starlette(
        routes=create_routes(services),
        middleware=middleware,
        lifespan=lifespan,
    )


def serve(
    services: Mapping[str, FileAccessService],
    config: Config | None = None,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Start the HTTP server.

    Args:
        services: File access services keyed by table name
        config: Configuration; defaults apply when omitted
        host: Host to bind to (defaults to config value)
        port: Port to bind to (defaults to config value)
    """
    import uvicorn

    config = config or Config()
    app = create_app(services, config)
    uvicorn.run(
        app,
        host=host or config.server.host,
        port=port or config.server.port,
    )
