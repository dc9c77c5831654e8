"""Access logging for gateway requests.

Each request outside ``LogConfig.excluded_paths`` produces a start line and
an outcome line. Requests addressed to a cell carry the cell id and action
in their log context, so every line a cell writes while serving the request
can be filtered by destination.
"""

import re
import time
from collections.abc import Awaitable, Callable
from typing import Final

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from cellgate.api.constants import REQUEST_ID_HEADER
from cellgate.core.config import LogConfig
from cellgate.core.constants import MILLISECONDS_PER_SECOND
from cellgate.core.context import RequestContext, generate_request_id

# /cells/{group}/{name}[/actions/{action} | /health]
CELL_PATH: Final[re.Pattern[str]] = re.compile(
    r"^/cells/(?P<group>[^/]+)/(?P<name>[^/]+)(?:/actions/(?P<action>[^/]+))?"
)


def cell_log_fields(path: str) -> dict[str, str]:
    """Log fields naming the cell and action a path addresses, if any."""
    match = CELL_PATH.match(path)
    if match is None:
        return {}

    fields = {"destination": f"{match['group']}/{match['name']}"}
    if match["action"]:
        fields["action"] = match["action"]
    return fields


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log the outcome and timing of every gateway request.

    Args:
        app: The ASGI application.
        log_config: Excluded paths and the slow request threshold.
        trust_proxy_headers: Read the client address from proxy headers.
    """

    def __init__(
        self, app: ASGIApp, *, log_config: LogConfig, trust_proxy_headers: bool = False
    ) -> None:
        super().__init__(app)
        self.slow_request_threshold_ms = log_config.slow_request_threshold_ms
        self.excluded_paths = frozenset(log_config.excluded_paths)
        self.trust_proxy_headers = trust_proxy_headers

    def _client_address(self, request: Request) -> str:
        if self.trust_proxy_headers:
            for header in ("x-forwarded-for", "x-real-ip"):
                if value := request.headers.get(header):
                    return value.split(",")[0].strip()

        return request.client.host if request.client else "unknown"

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        path = request.url.path
        if path in self.excluded_paths:
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()

        with logger.contextualize(
            request_id=request_id,
            method=request.method,
            path=path,
            channel=RequestContext.get_channel(),
            tenant_id=RequestContext.get_tenant_id(),
            client_host=self._client_address(request),
            **cell_log_fields(path),
        ):
            logger.info("Gateway request received")
            started = time.perf_counter()

            try:
                response = await call_next(request)
            except Exception as exc:
                logger.error(
                    "Gateway request aborted by {}",
                    type(exc).__name__,
                    duration_ms=_elapsed_ms(started),
                )
                raise

            duration_ms = _elapsed_ms(started)
            response.headers[REQUEST_ID_HEADER] = request_id

            if duration_ms > self.slow_request_threshold_ms:
                logger.warning(
                    "Gateway request answered slowly",
                    status_code=response.status_code,
                    duration_ms=duration_ms,
                    threshold_ms=self.slow_request_threshold_ms,
                )
            else:
                logger.info(
                    "Gateway request answered",
                    status_code=response.status_code,
                    duration_ms=duration_ms,
                )

            return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * MILLISECONDS_PER_SECOND, 2)
