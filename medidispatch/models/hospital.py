"""
Hospital bed pool model for MediDispatch.
"""

from typing import ClassVar, Dict, Optional

from pydantic import BaseModel, Field, model_validator

from medidispatch.models.entity import Entity, EntityKind


class Hospital(Entity):
    """
    Hospital with fungible bed counters.

    Only aggregate counts are tracked; individual beds have no identity.
    """
    KIND: ClassVar[EntityKind] = EntityKind.HOSPITAL
    ID_PREFIX: ClassVar[str] = "hosp"

    name: str = Field(..., description="Display name")
    address: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    total_beds: int = Field(..., ge=0, description="Fixed regular bed capacity")
    icu_beds: int = Field(0, ge=0, description="Fixed ICU bed capacity")
    available_beds: int = Field(..., ge=0, description="Free regular beds")
    available_icu_beds: int = Field(0, ge=0, description="Free ICU beds")

    @model_validator(mode="after")
    def _check_counters(self) -> "Hospital":
        if self.available_beds > self.total_beds:
            raise ValueError(
                f"available_beds {self.available_beds} exceeds total_beds {self.total_beds}"
            )
        if self.available_icu_beds > self.icu_beds:
            raise ValueError(
                f"available_icu_beds {self.available_icu_beds} exceeds icu_beds {self.icu_beds}"
            )
        return self

    @property
    def has_free_bed(self) -> bool:
        """Check if a regular bed can be reserved."""
        return self.available_beds > 0

    @property
    def occupancy_rate(self) -> float:
        """Regular bed occupancy as percentage."""
        if self.total_beds == 0:
            return 0.0
        return ((self.total_beds - self.available_beds) / self.total_beds) * 100

    def to_summary(self) -> Dict:
        """Return summary for dashboards."""
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "total_beds": self.total_beds,
            "available_beds": self.available_beds,
            "icu_beds": self.icu_beds,
            "available_icu_beds": self.available_icu_beds,
            "occupancy_rate": round(self.occupancy_rate, 1),
            "version": self.version,
        }


class HospitalCreate(BaseModel):
    """Provisioning payload for a new hospital."""
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field("", max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    total_beds: int = Field(..., ge=0)
    icu_beds: int = Field(0, ge=0)
    available_beds: Optional[int] = Field(None, ge=0, description="Defaults to total_beds")
    available_icu_beds: Optional[int] = Field(None, ge=0, description="Defaults to icu_beds")

    @model_validator(mode="after")
    def _check_counters(self) -> "HospitalCreate":
        if self.available_beds is not None and self.available_beds > self.total_beds:
            raise ValueError("available_beds cannot exceed total_beds")
        if self.available_icu_beds is not None and self.available_icu_beds > self.icu_beds:
            raise ValueError("available_icu_beds cannot exceed icu_beds")
        return self
