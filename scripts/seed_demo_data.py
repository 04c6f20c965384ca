#!/usr/bin/env python3
"""
Seed script to create a demo admin, a manual integration with 30 days of
values, a few KPIs and a dashboard.
Run with: python -m scripts.seed_demo_data
"""

import sys
import os
from datetime import datetime, timedelta
import random

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.database import SessionLocal
from app.schemas.auth import RegisterRequest
from app.schemas.dashboard import DashboardCreateRequest, WidgetCreateRequest
from app.schemas.integrations import BulkRow, BulkSubmitRequest, IntegrationCreateRequest, IntegrationFieldInput
from app.schemas.kpi import KpiCreateRequest, KpiSourceInput
from app.services.auth_service import AuthService
from app.services.dashboard_service import DashboardService
from app.services.integration_service import IntegrationService
from app.services.kpi_service import KPIService

DEMO_EMAIL = "demo@checkin.io"
DEMO_PASSWORD = "DemoPass123"

FIELDS = ["Revenue", "Deals", "Visitors", "Conversions", "Employees"]

KPIS = [
    {
        "name": "Revenue per Employee",
        "formula": "revenue / employees",
        "fields": ["revenue", "employees"],
        "target_value": 2500,
        "target_direction": "increase",
        "format": "currency",
    },
    {
        "name": "Conversion Rate",
        "formula": "(conversions / visitors) * 100",
        "fields": ["conversions", "visitors"],
        "target_value": 4,
        "target_direction": "increase",
        "format": "percent",
    },
    {
        "name": "Average Deal Size",
        "formula": "revenue / deals",
        "fields": ["revenue", "deals"],
        "target_value": 6000,
        "target_direction": "increase",
        "format": "currency",
    },
]


def daily_rows(days: int = 30) -> list[BulkRow]:
    """One row per day, ending today."""
    today = datetime.utcnow().replace(hour=9, minute=0, second=0, microsecond=0)
    rows = []
    for offset in range(days, -1, -1):
        deals = random.randint(15, 30)
        visitors = random.randint(2500, 4000)
        rows.append(BulkRow(
            timestamp=today - timedelta(days=offset),
            values={
                "revenue": deals * random.randint(4500, 7000),
                "deals": deals,
                "visitors": visitors,
                "conversions": int(visitors * random.uniform(0.025, 0.05)),
                "employees": random.randint(45, 55),
            },
        ))
    return rows


def create_demo_data():
    """Create demo data through the service layer."""
    db = SessionLocal()

    try:
        if AuthService.get_user_by_email(db, DEMO_EMAIL):
            print("Demo user already exists. Skipping seed.")
            return

        user, _ = AuthService.register(
            db, RegisterRequest(email=DEMO_EMAIL, password=DEMO_PASSWORD, name="Demo User")
        )
        print(f"Created user: {DEMO_EMAIL} (role: {user.role})")

        integration = IntegrationService.create(
            db,
            user,
            IntegrationCreateRequest(
                name="Sales",
                type="MANUAL",
                fields=[IntegrationFieldInput(name=name) for name in FIELDS],
            ),
        )
        fields = {field.variable_name: field for field in integration.data_fields}
        print(f"Created integration: {integration.name} ({len(fields)} fields)")

        result = IntegrationService.bulk_submit(db, integration, BulkSubmitRequest(rows=daily_rows()))
        print(f"Imported {result['records_count']} values (30 days)")

        kpis = []
        for kpi_data in KPIS:
            kpi = KPIService.create_kpi(
                db,
                user,
                KpiCreateRequest(
                    name=kpi_data["name"],
                    formula=kpi_data["formula"],
                    sources=[KpiSourceInput(data_field_id=fields[name].id) for name in kpi_data["fields"]],
                    target_value=kpi_data["target_value"],
                    target_direction=kpi_data["target_direction"],
                ),
            )
            kpis.append((kpi, kpi_data["format"]))
        print(f"Created {len(kpis)} KPIs")

        dashboard = DashboardService.create_dashboard(db, user, DashboardCreateRequest(name="Company Overview"))
        for kpi, value_format in kpis:
            DashboardService.add_widget(
                db, user, dashboard,
                WidgetCreateRequest(type="number", kpi_id=kpi.id, config={"title": kpi.name, "format": value_format}),
            )
        DashboardService.add_widget(
            db, user, dashboard,
            WidgetCreateRequest(type="gauge", kpi_id=kpis[1][0].id, config={"title": "Conversion vs target"}),
        )
        DashboardService.add_widget(
            db, user, dashboard,
            WidgetCreateRequest(
                type="line",
                kpi_id=kpis[0][0].id,
                config={"title": "Revenue per Employee", "period": "30d", "format": "currency"},
            ),
        )

        print("\n" + "=" * 50)
        print("Demo data created successfully!")
        print("=" * 50)
        print(f"\nLogin credentials:")
        print(f"  Email: {DEMO_EMAIL}")
        print(f"  Password: {DEMO_PASSWORD}")
        print(f"\nDashboard: {dashboard.name} ({len(dashboard.widgets)} widgets)")
        print("=" * 50)

    except Exception as e:
        db.rollback()
        print(f"Error creating demo data: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    create_demo_data()
