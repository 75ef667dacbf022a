"""
Ambulance model for MediDispatch.
"""

from datetime import datetime
from enum import Enum
from typing import ClassVar, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from medidispatch.models.entity import Entity, EntityKind


class AmbulanceStatus(str, Enum):
    """Operational status of an ambulance."""
    AVAILABLE = "available"
    BUSY = "busy"
    MAINTENANCE = "maintenance"


class Ambulance(Entity):
    """
    Ambulance unit.

    While ``busy`` the unit is held for exactly one report and one hospital
    until ``hold_expiry``; in any other status the hold fields are empty.
    """
    KIND: ClassVar[EntityKind] = EntityKind.AMBULANCE
    ID_PREFIX: ClassVar[str] = "amb"

    vehicle_number: str = Field(..., description="Human-readable unique vehicle number")
    current_location: Optional[str] = None
    status: AmbulanceStatus = AmbulanceStatus.AVAILABLE

    assigned_hospital: Optional[str] = Field(None, description="Hospital holding a bed for this run")
    assigned_report: Optional[str] = Field(None, description="Report served by this run")
    hold_expiry: Optional[datetime] = Field(None, description="When the hold may be auto-released")

    @model_validator(mode="after")
    def _check_hold(self) -> "Ambulance":
        if self.status == AmbulanceStatus.BUSY:
            if self.assigned_hospital is None or self.assigned_report is None or self.hold_expiry is None:
                raise ValueError("busy ambulance requires assigned_hospital, assigned_report and hold_expiry")
        elif (
            self.assigned_hospital is not None
            or self.assigned_report is not None
            or self.hold_expiry is not None
        ):
            raise ValueError(f"{self.status.value} ambulance cannot carry an assignment")
        return self

    @property
    def is_available(self) -> bool:
        return self.status == AmbulanceStatus.AVAILABLE

    @property
    def is_busy(self) -> bool:
        return self.status == AmbulanceStatus.BUSY

    def hold_expired(self, now: datetime) -> bool:
        """Check if the current hold has run out at ``now``."""
        return self.is_busy and self.hold_expiry is not None and self.hold_expiry <= now

    def to_summary(self) -> Dict:
        """Return summary for dashboards."""
        return {
            "id": self.id,
            "vehicle_number": self.vehicle_number,
            "current_location": self.current_location,
            "status": self.status.value,
            "assigned_hospital": self.assigned_hospital,
            "assigned_report": self.assigned_report,
            "hold_expiry": self.hold_expiry.isoformat() if self.hold_expiry else None,
            "version": self.version,
        }


class AmbulanceCreate(BaseModel):
    """Fleet registration payload."""
    id: Optional[str] = None
    vehicle_number: str = Field(
        ...,
        min_length=1,
        max_length=50,
        pattern=r"^[A-Za-z0-9-]+$",
        description="Letters, numbers and hyphens only",
    )
    current_location: Optional[str] = Field(None, max_length=200)
    status: AmbulanceStatus = AmbulanceStatus.AVAILABLE

    @field_validator("vehicle_number", mode="before")
    @classmethod
    def _normalize_vehicle_number(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("current_location", mode="before")
    @classmethod
    def _strip_location(cls, value):
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("status")
    @classmethod
    def _reject_busy(cls, value: AmbulanceStatus) -> AmbulanceStatus:
        if value == AmbulanceStatus.BUSY:
            raise ValueError("new ambulances must be available or in maintenance")
        return value
