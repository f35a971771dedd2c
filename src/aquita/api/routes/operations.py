"""Operational status routes (APP_ROLE=ops)."""

from fastapi import APIRouter, Depends

from aquita.api.auth import require_ops_token
from aquita.api.deps import get_services
from aquita.api.services import Services

router = APIRouter(prefix="/ops", tags=["ops"], dependencies=[Depends(require_ops_token)])


@router.get("/dashboard")
def operational_dashboard(services: Services = Depends(get_services)) -> dict:
    """Composite status of database, AI and WhatsApp dependencies."""
    return services.dashboard.get_operational_dashboard()


@router.get("/dependencies")
def dependency_reports(services: Services = Depends(get_services)) -> dict:
    """Raw per-key dependency reports, worst first."""
    reports = services.health_tracker.snapshot(
        services.settings.dashboard.latency_thresholds_ms
    )
    return {"data": [report.to_dict() for report in reports]}
