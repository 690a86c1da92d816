"""Request tracing middleware.

Every log line of one request carries the same correlation id. A caller's
X-Correlation-ID is honoured; webhook deliveries without one are traced by
the provider's x-webhook-id, so retries of a delivery can be grepped
together. Otherwise a UUID is generated.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from fanflow_shared.utils.logging import clear_correlation_id, set_correlation_id

CORRELATION_ID_HEADER = "X-Correlation-ID"
WEBHOOK_ID_HEADER = "x-webhook-id"


def incoming_correlation_id(request: Request) -> str | None:
    headers = request.headers
    return headers.get(CORRELATION_ID_HEADER) or headers.get(WEBHOOK_ID_HEADER) or None


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds a correlation id to the request context and echoes it in the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = set_correlation_id(incoming_correlation_id(request))
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
