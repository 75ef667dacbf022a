"""
Ambulance routes for MediDispatch API

Fleet registration, status listings and release by medical staff.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from medidispatch.api.dependencies import get_engine, get_hospital_scope, get_store, get_views
from medidispatch.core.allocation_engine import AllocationEngine
from medidispatch.core.entity_store import EntityStore
from medidispatch.core.query_views import QueryViews
from medidispatch.models.ambulance import AmbulanceStatus
from medidispatch.models.entity import EntityKind

router = APIRouter()


@router.post("", status_code=201)
async def register_ambulance(
    payload: Dict[str, Any] = Body(...),
    engine: AllocationEngine = Depends(get_engine)
):
    """Register a new ambulance with the fleet."""
    ambulance = await engine.register_ambulance(payload)
    return ambulance.model_dump(mode="json")


@router.get("")
async def list_ambulances(
    status: Optional[AmbulanceStatus] = Query(None, description="Filter by status"),
    store: EntityStore = Depends(get_store),
    views: QueryViews = Depends(get_views)
) -> List[Dict[str, Any]]:
    """List ambulances, sorted by vehicle number."""
    if status == AmbulanceStatus.AVAILABLE:
        ambulances = views.available_ambulances()
    elif status is not None:
        ambulances = sorted(
            store.list(EntityKind.AMBULANCE, lambda a: a.status == status),
            key=lambda a: a.vehicle_number
        )
    else:
        ambulances = views.all_ambulances()
    return [a.to_summary() for a in ambulances]


@router.get("/{ambulance_id}")
async def get_ambulance(ambulance_id: str, store: EntityStore = Depends(get_store)):
    """Get ambulance details."""
    return store.get(EntityKind.AMBULANCE, ambulance_id).model_dump(mode="json")


@router.post("/{ambulance_id}/release")
async def release_ambulance(
    ambulance_id: str,
    expected_version: Optional[int] = Query(None, ge=1, description="Ambulance version the caller saw"),
    engine: AllocationEngine = Depends(get_engine),
    hospital_scope: Optional[str] = Depends(get_hospital_scope)
):
    """Mark a busy ambulance available, complete its report and free the bed."""
    result = await engine.release_ambulance(
        ambulance_id,
        caller_hospital_id=hospital_scope,
        expected_version=expected_version,
    )
    return result.to_dict()
