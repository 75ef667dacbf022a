"""
Models package for MediDispatch backend.
"""

from .entity import Entity, EntityKind

from .hospital import (
    Hospital,
    HospitalCreate
)

from .ambulance import (
    Ambulance,
    AmbulanceCreate,
    AmbulanceStatus
)

from .report import (
    EmergencyReport,
    EmergencyReportCreate,
    ReportStatus,
    Severity
)

from .events import (
    MutationAction,
    MutationEvent
)

__all__ = [
    # Base
    "Entity",
    "EntityKind",

    # Hospital
    "Hospital",
    "HospitalCreate",

    # Ambulance
    "Ambulance",
    "AmbulanceCreate",
    "AmbulanceStatus",

    # Report
    "EmergencyReport",
    "EmergencyReportCreate",
    "ReportStatus",
    "Severity",

    # Events
    "MutationAction",
    "MutationEvent"
]
