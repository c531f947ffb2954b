"""API routes package.

Routers are organized by domain:

- health: Health check endpoints
- payments: Payment return checks and provider verification
- webhooks: Payment provider webhooks

All routers are registered in main.py with /api prefix.
"""

from api.routes.health import router as health_router
from api.routes.payments import router as payments_router
from api.routes.webhooks import router as webhooks_router

__all__ = [
    "health_router",
    "payments_router",
    "webhooks_router",
]
