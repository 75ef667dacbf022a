"""
Hospital routes for MediDispatch API

Provisioning, bed availability and the incoming ambulance board.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from medidispatch.api.dependencies import get_engine, get_hospital_scope, get_store, get_views
from medidispatch.core.allocation_engine import AllocationEngine
from medidispatch.core.entity_store import EntityStore
from medidispatch.core.query_views import QueryViews
from medidispatch.models.entity import EntityKind

router = APIRouter()


class BedUpdateRequest(BaseModel):
    """Staff-reported bed counts."""
    available_beds: int
    available_icu_beds: int
    expected_version: Optional[int] = Field(None, ge=1, description="Hospital version the caller saw")


@router.post("", status_code=201)
async def register_hospital(
    payload: Dict[str, Any] = Body(...),
    engine: AllocationEngine = Depends(get_engine)
):
    """Provision a hospital."""
    hospital = await engine.register_hospital(payload)
    return hospital.model_dump(mode="json")


@router.get("")
async def list_hospitals(
    available: bool = Query(False, description="Only hospitals with a free bed"),
    views: QueryViews = Depends(get_views)
) -> List[Dict[str, Any]]:
    """List hospitals, sorted by name."""
    hospitals = views.available_hospitals() if available else views.all_hospitals()
    return [h.to_summary() for h in hospitals]


@router.get("/{hospital_id}")
async def get_hospital(hospital_id: str, store: EntityStore = Depends(get_store)):
    """Get hospital details."""
    return store.get(EntityKind.HOSPITAL, hospital_id).model_dump(mode="json")


@router.put("/{hospital_id}/beds")
async def update_beds(
    hospital_id: str,
    request: BedUpdateRequest,
    engine: AllocationEngine = Depends(get_engine),
    hospital_scope: Optional[str] = Depends(get_hospital_scope)
):
    """Overwrite bed availability with the counts reported by staff."""
    hospital = await engine.update_bed_availability(
        hospital_id,
        available_beds=request.available_beds,
        available_icu_beds=request.available_icu_beds,
        expected_version=request.expected_version,
        caller_hospital_id=hospital_scope,
    )
    return hospital.model_dump(mode="json")


@router.get("/{hospital_id}/incoming")
async def incoming_ambulances(hospital_id: str, views: QueryViews = Depends(get_views)):
    """Ambulances currently en route to this hospital."""
    return [i.model_dump(mode="json") for i in views.incoming_ambulances(hospital_id)]


@router.get("/{hospital_id}/ambulances")
async def hospital_ambulances(hospital_id: str, views: QueryViews = Depends(get_views)):
    """Ambulances holding a bed at this hospital."""
    return [a.to_summary() for a in views.hospital_ambulances(hospital_id)]
