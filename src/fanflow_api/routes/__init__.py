"""API routes package.

Routers are organized by endpoint:

- webhooks: Provider webhook ingestion (POST /api/webhook)
- payments: Client-confirmed payment updates (POST /api/update-payment)

All routers are registered in main.py with /api prefix.
"""

from fanflow_api.routes.payments import router as payments_router
from fanflow_api.routes.webhooks import router as webhooks_router

__all__ = [
    "payments_router",
    "webhooks_router",
]
