"""
ORM tables backing the entity store.
"""

from typing import Dict, Type

from sqlalchemy import Column, DateTime, Enum, Float, ForeignKey, Integer, String, Text

from medidispatch.db.connection import Base
from medidispatch.models.ambulance import Ambulance, AmbulanceStatus
from medidispatch.models.entity import Entity, EntityKind
from medidispatch.models.hospital import Hospital
from medidispatch.models.report import EmergencyReport, ReportStatus, Severity


class HospitalRow(Base):
    __tablename__ = "hospitals"

    id = Column(String(64), primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    name = Column(String(200), nullable=False)
    address = Column(String(500), nullable=False, default="")
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    total_beds = Column(Integer, nullable=False)
    available_beds = Column(Integer, nullable=False)
    icu_beds = Column(Integer, nullable=False, default=0)
    available_icu_beds = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)


class AmbulanceRow(Base):
    __tablename__ = "ambulances"

    id = Column(String(64), primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    vehicle_number = Column(String(50), nullable=False, unique=True, index=True)
    current_location = Column(String(200), nullable=True)
    status = Column(Enum(AmbulanceStatus), nullable=False, default=AmbulanceStatus.AVAILABLE)
    assigned_hospital = Column(String(64), ForeignKey("hospitals.id"), nullable=True)
    assigned_report = Column(String(64), nullable=True)
    hold_expiry = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)


class ReportRow(Base):
    __tablename__ = "emergency_reports"

    id = Column(String(64), primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    patient_name = Column(String(100), nullable=False)
    patient_age = Column(Integer, nullable=False)
    patient_phone = Column(String(20), nullable=False)
    patient_address = Column(String(500), nullable=False)
    symptoms = Column(Text, nullable=False)
    severity = Column(Enum(Severity), nullable=False)
    pickup_location = Column(String(500), nullable=False)
    reported_by = Column(String(64), nullable=True)
    status = Column(Enum(ReportStatus), nullable=False, default=ReportStatus.REPORTED)
    assigned_ambulance = Column(String(64), ForeignKey("ambulances.id"), nullable=True)
    assigned_hospital = Column(String(64), ForeignKey("hospitals.id"), nullable=True)
    created_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)


ROW_TYPES: Dict[EntityKind, Type[Base]] = {
    EntityKind.HOSPITAL: HospitalRow,
    EntityKind.AMBULANCE: AmbulanceRow,
    EntityKind.REPORT: ReportRow,
}

ENTITY_TYPES: Dict[Type[Base], Type[Entity]] = {
    HospitalRow: Hospital,
    AmbulanceRow: Ambulance,
    ReportRow: EmergencyReport,
}


def row_from_entity(entity: Entity) -> Base:
    """Build the ORM row for an entity; merge() decides insert or update."""
    row_type = ROW_TYPES[entity.KIND]
    return row_type(**entity.model_dump())


def entity_from_row(row: Base) -> Entity:
    """Build the pydantic entity for an ORM row."""
    entity_type = ENTITY_TYPES[type(row)]
    data = {column.name: getattr(row, column.name) for column in row.__table__.columns}
    return entity_type.model_validate(data)
