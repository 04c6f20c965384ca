from app.api.routes.auth import router as auth_router
from app.api.routes.dashboards import router as dashboards_router
from app.api.routes.kpis import router as kpis_router
from app.api.routes.sharing import router as sharing_router
from app.api.routes.shared import router as shared_router
from app.api.routes.integrations import router as integrations_router
from app.api.routes.webhooks import router as webhooks_router
from app.api.routes.data_fields import router as data_fields_router

__all__ = [
    "auth_router",
    "dashboards_router",
    "kpis_router",
    "sharing_router",
    "shared_router",
    "integrations_router",
    "webhooks_router",
    "data_fields_router",
]
