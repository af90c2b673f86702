"""HTTP server module."""

from record_files.server.app import create_app, serve
from record_files.server.middleware import RequestContextMiddleware
from record_files.server.routes import create_routes

__all__ = ["RequestContextMiddleware", "create_app", "create_routes", "serve"]
