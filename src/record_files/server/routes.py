"""HTTP route handlers for record file access.

Routes, per table:
    POST   /tables/{table}/{id}/StorageToken
    GET    /tables/{table}/{id}/MobileServiceFiles
    DELETE /tables/{table}/{id}/MobileServiceFiles/{name}
"""

import functools
import json
import time
from collections.abc import Awaitable, Callable, Mapping

from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from record_files.exceptions import InvalidArgumentError
from record_files.models import TokenRequest
from record_files.observability import RequestContext, get_logger, request_id_var
from record_files.service import FileAccessService

logger = get_logger(__name__)

Handler = Callable[[Request, FileAccessService], Awaitable[Response]]


def create_routes(services: Mapping[str, FileAccessService]) -> list[Route]:
    """Create HTTP routes for the given table services.

    Args:
        services: File access services keyed by table name (case-insensitive)

    Returns:
        List of Starlette routes
    """
    by_table = {name.lower(): service for name, service in services.items()}

    def table_route(handler: Handler) -> Callable[[Request], Awaitable[Response]]:
        """Resolve the table's service and map errors to HTTP statuses.

        Invalid requests are 400, unknown tables 404. Backend failures are
        logged and reported as 500 without backend details.
        """

        @functools.wraps(handler)
        async def wrapper(request: Request) -> Response:
            table = request.path_params["table"]
            service = by_table.get(table.lower())
            if service is None:
                return JSONResponse({"error": f"Unknown table: {table}"}, status_code=404)

            async with RequestContext(
                request_id=request_id_var.get(),
                table_name=service.table_name,
                entity_id=request.path_params["id"],
            ):
                try:
                    return await handler(request, service)
                except InvalidArgumentError as e:
                    return JSONResponse({"error": str(e)}, status_code=400)
                except Exception as e:
                    logger.error("Storage operation failed", error=e)
                    return JSONResponse({"error": "Storage operation failed"}, status_code=500)

        return wrapper

    async def health(request: Request) -> Response:
        """Health check endpoint."""
        return JSONResponse({"status": "ok", "timestamp": time.time()})

    @table_route
    async def storage_token(request: Request, service: FileAccessService) -> Response:
        entity_id = request.path_params["id"]
        try:
            body = await request.json()
        except json.JSONDecodeError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        token_request = TokenRequest.from_dict(
            body, table_name=service.table_name, parent_id=entity_id
        )
        token = await service.issue_token(entity_id, token_request)
        return JSONResponse(token.to_dict())

    @table_route
    async def list_files(request: Request, service: FileAccessService) -> Response:
        files = await service.list_files(request.path_params["id"])
        return JSONResponse([f.to_dict() for f in files])

    @table_route
    async def delete_file(request: Request, service: FileAccessService) -> Response:
        await service.delete_file(request.path_params["id"], request.path_params["name"])
        return Response(status_code=204)

    return [
        Route("/health", health, methods=["GET"]),
        Route("/tables/{table}/{id}/StorageToken", storage_token, methods=["POST"]),
        Route("/tables/{table}/{id}/MobileServiceFiles", list_files, methods=["GET"]),
        Route("/tables/{table}/{id}/MobileServiceFiles/{name}", delete_file, methods=["DELETE"]),
    ]
