from app.services.auth_service import AuthService
from app.services.access_service import AccessService
from app.services.calculation_service import CalculationService
from app.services.data_field_service import DataFieldService
from app.services.kpi_service import KPIService
from app.services.history_service import HistoryService
from app.services.dashboard_service import DashboardService
from app.services.sharing_service import SharingService
from app.services.sync_service import SyncService
from app.services.integration_service import IntegrationService

__all__ = [
    "AuthService",
    "AccessService",
    "CalculationService",
    "DataFieldService",
    "KPIService",
    "HistoryService",
    "DashboardService",
    "SharingService",
    "SyncService",
    "IntegrationService",
]
