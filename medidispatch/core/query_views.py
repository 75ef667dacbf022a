"""
Read projections for the dispatch dashboards.

Everything here is recomputed from committed entity state on each call;
nothing is cached or stored.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from medidispatch.core.entity_store import EntityStore
from medidispatch.models.ambulance import Ambulance, AmbulanceStatus
from medidispatch.models.entity import EntityKind
from medidispatch.models.hospital import Hospital
from medidispatch.models.report import EmergencyReport, ReportStatus


class IncomingAmbulance(BaseModel):
    """An ambulance currently bringing a patient to a hospital."""
    ambulance_id: str
    vehicle_number: str
    report_id: str
    patient_name: str
    severity: str
    hold_expiry: Optional[datetime] = None


class DispatchStats(BaseModel):
    """Counts behind the dashboard tiles."""
    total_ambulances: int = 0
    available_ambulances: int = 0
    busy_ambulances: int = 0
    maintenance_ambulances: int = 0
    pending_reports: int = 0
    active_reports: int = 0
    completed_reports: int = 0
    hospitals: int = 0
    hospitals_with_beds: int = 0
    total_available_beds: int = 0
    total_available_icu_beds: int = 0


def _oldest_first(report: EmergencyReport) -> datetime:
    return report.created_at or datetime.min


class QueryViews:
    """Derived reads over the entity store."""

    def __init__(self, store: EntityStore):
        self.store = store

    def available_ambulances(self) -> List[Ambulance]:
        ambulances = self.store.list(EntityKind.AMBULANCE, lambda a: a.status == AmbulanceStatus.AVAILABLE)
        return sorted(ambulances, key=lambda a: a.vehicle_number)

    def available_hospitals(self) -> List[Hospital]:
        """Hospitals with at least one free regular bed."""
        hospitals = self.store.list(EntityKind.HOSPITAL, lambda h: h.available_beds > 0)
        return sorted(hospitals, key=lambda h: h.name)

    def pending_reports(self) -> List[EmergencyReport]:
        """Reports waiting for dispatch, oldest first."""
        reports = self.store.list(EntityKind.REPORT, lambda r: r.status == ReportStatus.REPORTED)
        return sorted(reports, key=_oldest_first)

    def active_reports(self) -> List[EmergencyReport]:
        """Reports with an ambulance en route."""
        reports = self.store.list(EntityKind.REPORT, lambda r: r.status == ReportStatus.EN_ROUTE)
        return sorted(reports, key=_oldest_first)

    def all_ambulances(self) -> List[Ambulance]:
        return sorted(self.store.list(EntityKind.AMBULANCE), key=lambda a: a.vehicle_number)

    def all_hospitals(self) -> List[Hospital]:
        return sorted(self.store.list(EntityKind.HOSPITAL), key=lambda h: h.name)

    def hospital_ambulances(self, hospital_id: str) -> List[Ambulance]:
        """Ambulances currently holding a bed at a hospital."""
        self.store.get(EntityKind.HOSPITAL, hospital_id)
        ambulances = self.store.list(EntityKind.AMBULANCE, lambda a: a.assigned_hospital == hospital_id)
        return sorted(ambulances, key=lambda a: a.vehicle_number)

    def incoming_ambulances(self, hospital_id: str) -> List[IncomingAmbulance]:
        """
        Ambulances en route to a hospital with the patient they carry.

        Joined at read time from en-route reports and the ambulances they
        reference.

        Raises:
            NotFoundError: unknown hospital
        """
        self.store.get(EntityKind.HOSPITAL, hospital_id)

        ambulances: Dict[str, Ambulance] = {
            a.id: a for a in self.store.list(EntityKind.AMBULANCE, lambda a: a.status == AmbulanceStatus.BUSY)
        }
        incoming = []
        for report in self.active_reports():
            if report.assigned_hospital != hospital_id or not report.assigned_ambulance:
                continue
            ambulance = ambulances.get(report.assigned_ambulance)
            if ambulance is None:
                continue
            incoming.append(IncomingAmbulance(
                ambulance_id=ambulance.id,
                vehicle_number=ambulance.vehicle_number,
                report_id=report.id,
                patient_name=report.patient_name,
                severity=report.severity.value,
                hold_expiry=ambulance.hold_expiry,
            ))
        return incoming

    def expired_holds(self, now: Optional[datetime] = None) -> List[Ambulance]:
        """Busy ambulances whose hold ran out, judged by the store clock."""
        now = now or self.store.now()
        expired = self.store.list(EntityKind.AMBULANCE, lambda a: a.hold_expired(now))
        return sorted(expired, key=lambda a: a.hold_expiry)

    def dispatch_stats(self) -> DispatchStats:
        ambulances = self.store.list(EntityKind.AMBULANCE)
        reports = self.store.list(EntityKind.REPORT)
        hospitals = self.store.list(EntityKind.HOSPITAL)

        def count_status(items, status) -> int:
            return sum(1 for item in items if item.status == status)

        return DispatchStats(
            total_ambulances=len(ambulances),
            available_ambulances=count_status(ambulances, AmbulanceStatus.AVAILABLE),
            busy_ambulances=count_status(ambulances, AmbulanceStatus.BUSY),
            maintenance_ambulances=count_status(ambulances, AmbulanceStatus.MAINTENANCE),
            pending_reports=count_status(reports, ReportStatus.REPORTED),
            active_reports=count_status(reports, ReportStatus.EN_ROUTE),
            completed_reports=count_status(reports, ReportStatus.COMPLETED),
            hospitals=len(hospitals),
            hospitals_with_beds=sum(1 for h in hospitals if h.available_beds > 0),
            total_available_beds=sum(h.available_beds for h in hospitals),
            total_available_icu_beds=sum(h.available_icu_beds for h in hospitals),
        )
