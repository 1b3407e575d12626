"""API routes."""

from completion_billing.api.routes.health import router as health_router
from completion_billing.api.routes.invoices import router as invoices_router
from completion_billing.api.routes.notifications import router as notifications_router
from completion_billing.api.routes.payments import router as payments_router
from completion_billing.api.routes.projects import router as projects_router
from completion_billing.api.routes.tasks import router as tasks_router
from completion_billing.api.routes.wallets import router as wallets_router

__all__ = [
    "health_router",
    "invoices_router",
    "notifications_router",
    "payments_router",
    "projects_router",
    "tasks_router",
    "wallets_router",
]
