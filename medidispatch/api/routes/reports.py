"""
Emergency report routes for MediDispatch API

Intake of new reports, dashboard listings and ambulance assignment.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from medidispatch.api.dependencies import get_engine, get_store, get_views
from medidispatch.core.allocation_engine import AllocationEngine
from medidispatch.core.entity_store import EntityStore
from medidispatch.core.query_views import QueryViews
from medidispatch.models.entity import EntityKind
from medidispatch.models.report import ReportStatus

router = APIRouter()


class AssignRequest(BaseModel):
    """Dispatch request from the report center."""
    ambulance_id: str = Field(..., description="Ambulance to send")
    hospital_id: str = Field(..., description="Hospital to reserve a bed at")
    report_version: Optional[int] = Field(None, ge=1, description="Report version the caller saw")
    ambulance_version: Optional[int] = Field(None, ge=1, description="Ambulance version the caller saw")
    hospital_version: Optional[int] = Field(None, ge=1, description="Hospital version the caller saw")


@router.post("", status_code=201)
async def create_report(
    payload: Dict[str, Any] = Body(...),
    engine: AllocationEngine = Depends(get_engine)
):
    """Create a new emergency report in ``reported`` status."""
    report = await engine.create_emergency_report(payload)
    return report.model_dump(mode="json")


@router.get("")
async def list_reports(
    status: Optional[ReportStatus] = Query(None, description="Filter by status"),
    store: EntityStore = Depends(get_store),
    views: QueryViews = Depends(get_views)
) -> List[Dict[str, Any]]:
    """List reports. ``reported`` and ``en_route`` use the dispatch views."""
    if status == ReportStatus.REPORTED:
        reports = views.pending_reports()
    elif status == ReportStatus.EN_ROUTE:
        reports = views.active_reports()
    elif status is not None:
        reports = store.list(EntityKind.REPORT, lambda r: r.status == status)
    else:
        reports = store.list(EntityKind.REPORT)
    return [r.to_summary() for r in reports]


@router.get("/{report_id}")
async def get_report(report_id: str, store: EntityStore = Depends(get_store)):
    """Get full report details."""
    return store.get(EntityKind.REPORT, report_id).model_dump(mode="json")


@router.post("/{report_id}/assign")
async def assign_ambulance(
    report_id: str,
    request: AssignRequest,
    engine: AllocationEngine = Depends(get_engine)
):
    """Assign an ambulance and a hospital bed to a pending report."""
    result = await engine.assign_ambulance(
        report_id=report_id,
        ambulance_id=request.ambulance_id,
        hospital_id=request.hospital_id,
        report_version=request.report_version,
        ambulance_version=request.ambulance_version,
        hospital_version=request.hospital_version,
    )
    return result.to_dict()
