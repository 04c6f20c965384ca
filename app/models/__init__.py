from app.models.user import User, UserRole
from app.models.integration import Integration, IntegrationType, IntegrationStatus
from app.models.data_field import DataField, FieldType
from app.models.data_value import DataValue
from app.models.kpi import Kpi, TargetDirection
from app.models.kpi_source import KpiSource
from app.models.dashboard import Dashboard
from app.models.widget import Widget, WidgetType
from app.models.access import DashboardAccess, KpiAccess, AccessPermission
from app.models.share_link import ShareLink, ShareResourceType
from app.models.sync_log import SyncLog

__all__ = [
    "User",
    "UserRole",
    "Integration",
    "IntegrationType",
    "IntegrationStatus",
    "DataField",
    "FieldType",
    "DataValue",
    "Kpi",
    "TargetDirection",
    "KpiSource",
    "Dashboard",
    "Widget",
    "WidgetType",
    "DashboardAccess",
    "KpiAccess",
    "AccessPermission",
    "ShareLink",
    "ShareResourceType",
    "SyncLog",
]
