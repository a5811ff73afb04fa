"""API routes."""

from backoffice_engine.api.routes.customers import router as customers_router
from backoffice_engine.api.routes.health import router as health_router
from backoffice_engine.api.routes.payments import router as payments_router
from backoffice_engine.api.routes.settings import router as settings_router
from backoffice_engine.api.routes.tasks import router as tasks_router
from backoffice_engine.api.routes.workflows import router as workflows_router

__all__ = [
    "customers_router",
    "health_router",
    "payments_router",
    "settings_router",
    "tasks_router",
    "workflows_router",
]
