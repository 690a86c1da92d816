"""ASGI entry point of the FanFlow webhook service.

Endpoints, all under /api:
- GET /ping: liveness check
- POST /webhook: Thirdweb payment notifications
- POST /update-payment: payments confirmed by the checkout widgets
"""

import os
from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from fanflow_api.exceptions import register_exception_handlers
from fanflow_api.middleware.correlation import CorrelationIdMiddleware
from fanflow_api.models.common import PingResponse
from fanflow_api.routes.payments import router as payments_router
from fanflow_api.routes.webhooks import router as webhooks_router
from fanflow_shared.utils.logging import configure_logging

configure_logging(os.getenv("LOG_LEVEL", "INFO"))

app = FastAPI(
    title="FanFlow Webhook API",
    description="Payment webhook ingestion and ledger reconciliation",
    version="0.1.0",
)

# Dashboard origins; override with a comma-separated CORS_ALLOW_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv(
        "CORS_ALLOW_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)

# Non-POST methods on these routes are answered with 405 by the router
app.include_router(webhooks_router, prefix="/api")
app.include_router(payments_router, prefix="/api")


@app.get("/api/ping", response_model=PingResponse)
async def ping() -> PingResponse:
    """Root health check endpoint at /api/ping."""
    return PingResponse(
        timestamp=datetime.now(UTC).isoformat(),
        service="fanflow-webhooks",
    )


# API Gateway / Lambda entry point
handler = Mangum(app, lifespan="off")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = False) -> None:
    """Serve the app with uvicorn (the ``fanflow-api`` console script).

    Args:
        host: Bind address
        port: Listen port
        reload: Restart on source changes under ``src``
    """
    import uvicorn

    if reload:
        # uvicorn only reloads apps given as an import string
        uvicorn.run("fanflow_api.main:app", host=host, port=port, reload=True, reload_dirs=["src"])
        return
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server(reload=True)
