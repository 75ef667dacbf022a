"""
Core package for MediDispatch backend.
"""

from .config import Config
from .errors import (
    DispatchError,
    NotFoundError,
    PreconditionFailedError,
    ReportNotPendingError,
    AmbulanceUnavailableError,
    HospitalFullError,
    AmbulanceNotBusyError,
    ConflictError,
    OutOfRangeError,
    ValidationFailedError,
    DuplicateVehicleError,
    OutOfScopeError
)
from .change_notifier import ChangeNotifier, Subscription, create_event_id
from .entity_store import EntityStore, UnitOfWork
from .allocation_engine import AllocationEngine, AssignmentResult, ReleaseResult
from .query_views import QueryViews, IncomingAmbulance, DispatchStats

__all__ = [
    "Config",
    "DispatchError",
    "NotFoundError",
    "PreconditionFailedError",
    "ReportNotPendingError",
    "AmbulanceUnavailableError",
    "HospitalFullError",
    "AmbulanceNotBusyError",
    "ConflictError",
    "OutOfRangeError",
    "ValidationFailedError",
    "DuplicateVehicleError",
    "OutOfScopeError",
    "ChangeNotifier",
    "Subscription",
    "create_event_id",
    "EntityStore",
    "UnitOfWork",
    "AllocationEngine",
    "AssignmentResult",
    "ReleaseResult",
    "QueryViews",
    "IncomingAmbulance",
    "DispatchStats"
]
