"""Request context middleware for the HTTP server."""

from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from record_files.observability import RequestContext

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request id to the logging context of each request.

    The id is taken from the incoming `X-Request-ID` header when present,
    otherwise generated, and echoed on the response.
    """

    def __init__(self, app: Any, header_name: str = REQUEST_ID_HEADER) -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        incoming = request.headers.get(self.header_name) or None
        async with RequestContext(request_id=incoming) as context:
            request.state.request_id = context.request_id
            response = await call_next(request)

        response.headers[self.header_name] = context.request_id
        return response
