"""
Emergency report models for MediDispatch.
"""

from enum import Enum
from typing import ClassVar, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from medidispatch.models.entity import Entity, EntityKind


class Severity(str, Enum):
    """Reported severity. Kept for display and audit, never used for ordering."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReportStatus(str, Enum):
    """Lifecycle of an emergency report: reported -> en_route -> completed."""
    REPORTED = "reported"
    EN_ROUTE = "en_route"
    COMPLETED = "completed"


class EmergencyReport(Entity):
    """Patient emergency report."""
    KIND: ClassVar[EntityKind] = EntityKind.REPORT
    ID_PREFIX: ClassVar[str] = "rpt"

    patient_name: str
    patient_age: int
    patient_phone: str
    patient_address: str
    symptoms: str
    severity: Severity
    pickup_location: str
    reported_by: Optional[str] = Field(None, description="Caller identity from the auth layer")

    status: ReportStatus = ReportStatus.REPORTED
    assigned_ambulance: Optional[str] = None
    assigned_hospital: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == ReportStatus.REPORTED

    @property
    def is_active(self) -> bool:
        return self.status == ReportStatus.EN_ROUTE

    def to_summary(self) -> Dict:
        """Return summary for dashboards."""
        return {
            "id": self.id,
            "patient_name": self.patient_name,
            "patient_age": self.patient_age,
            "severity": self.severity.value,
            "pickup_location": self.pickup_location,
            "status": self.status.value,
            "assigned_ambulance": self.assigned_ambulance,
            "assigned_hospital": self.assigned_hospital,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "version": self.version,
        }


class EmergencyReportCreate(BaseModel):
    """
    Intake payload for a new report.

    Mirrors the rules of the intake form; the chat agent and staff entry
    both submit through this model.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    patient_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        pattern=r"^[a-zA-Z\s'-]+$",
        description="Letters, spaces, hyphens and apostrophes",
    )
    patient_age: int = Field(..., ge=0, le=150)
    patient_phone: str = Field(
        ...,
        min_length=10,
        max_length=16,
        pattern=r"^\+?[1-9]\d{9,14}$",
        description="International format, e.g. +1234567890",
    )
    patient_address: str = Field(..., min_length=5, max_length=500)
    symptoms: str = Field(..., min_length=10, max_length=2000)
    severity: Severity
    pickup_location: str = Field(..., min_length=5, max_length=500)
    reported_by: Optional[str] = None
