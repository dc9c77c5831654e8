"""Request context middleware for correlation, channel and caller identity.

For each request this middleware:
- extracts or generates the correlation ID and echoes it on the response
- records the ``X-Cell-Channel`` header (default from settings) for the
  router's invocation log
- records the ``X-Tenant-ID`` and ``X-User-ID`` identity headers, which the
  identity cell reads instead of a session object

Values are held in contextvars and bound to Loguru with ``contextualize``,
so they are cleaned up when the request ends.
"""

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from cellgate.api.constants import (
    CHANNEL_HEADER,
    CORRELATION_ID_HEADER,
    MAX_IDENTITY_HEADER_LENGTH,
    TENANT_ID_HEADER,
    USER_ID_HEADER,
)
from cellgate.core.context import RequestContext, generate_correlation_id


def _identity_header(request: Request, name: str) -> str | None:
    value = request.headers.get(name, "").strip()
    if not value or len(value) > MAX_IDENTITY_HEADER_LENGTH:
        return None
    return value


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to manage request context and correlation IDs.

    Args:
        app: The ASGI application.
        default_channel: Channel recorded when the header is absent.
    """

    def __init__(self, app: ASGIApp, *, default_channel: str = "stable") -> None:
        super().__init__(app)
        self.default_channel = default_channel

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request with context management.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: Response with correlation ID header.
        """
        correlation_id = (
            request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        )
        channel = request.headers.get(CHANNEL_HEADER) or self.default_channel
        tenant_id = _identity_header(request, TENANT_ID_HEADER)
        user_id = _identity_header(request, USER_ID_HEADER)

        RequestContext.set_correlation_id(correlation_id)
        RequestContext.set_channel(channel)
        RequestContext.set_identity(tenant_id, user_id)

        with logger.contextualize(
            correlation_id=correlation_id, channel=channel, tenant_id=tenant_id
        ):
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
