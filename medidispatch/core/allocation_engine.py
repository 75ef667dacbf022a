"""
Allocation engine for MediDispatch.

Applies the assign/release transitions that link an emergency report, an
ambulance and a hospital bed, and the staff-reported bed overwrite. Every
operation runs inside one entity store transaction, so either all of its
writes commit or none do.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError

from medidispatch.core.config import Config
from medidispatch.core.entity_store import EntityStore, Key
from medidispatch.core.errors import (
    AmbulanceNotBusyError,
    AmbulanceUnavailableError,
    ConflictError,
    DuplicateVehicleError,
    HospitalFullError,
    OutOfRangeError,
    OutOfScopeError,
    ReportNotPendingError,
    ValidationFailedError,
)
from medidispatch.models.ambulance import Ambulance, AmbulanceCreate, AmbulanceStatus
from medidispatch.models.entity import EntityKind
from medidispatch.models.events import MutationAction
from medidispatch.models.hospital import Hospital, HospitalCreate
from medidispatch.models.report import EmergencyReport, EmergencyReportCreate, ReportStatus

logger = logging.getLogger(__name__)


class AssignmentResult(BaseModel):
    """Snapshot of the three entities after an assignment."""
    report: EmergencyReport
    ambulance: Ambulance
    hospital: Hospital

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report": self.report.model_dump(mode="json"),
            "ambulance": self.ambulance.model_dump(mode="json"),
            "hospital": self.hospital.model_dump(mode="json"),
        }


class ReleaseResult(BaseModel):
    """Snapshot after an ambulance release."""
    ambulance: Ambulance
    hospital: Hospital
    report: Optional[EmergencyReport] = None
    automatic: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ambulance": self.ambulance.model_dump(mode="json"),
            "hospital": self.hospital.model_dump(mode="json"),
            "report": self.report.model_dump(mode="json") if self.report else None,
            "automatic": self.automatic,
        }


def _parse(model: type, fields: Union[BaseModel, Dict[str, Any]], entity_kind: str) -> Any:
    if isinstance(fields, model):
        return fields
    if isinstance(fields, BaseModel):
        fields = fields.model_dump()
    try:
        return model.model_validate(fields)
    except ValidationError as e:
        raise ValidationFailedError.from_pydantic(e, f"Invalid {entity_kind} payload", entity_kind) from e


class AllocationEngine:
    """
    Enforces the dispatch invariants.

    The engine never retries on ConflictError: a retry must start from a
    fresh read by the caller, otherwise a stale intent could be re-applied.
    """

    def __init__(self, store: EntityStore, hold_duration: Optional[timedelta] = None):
        """
        Initialize the engine.

        Args:
            store: Entity store holding all records
            hold_duration: How long an assigned ambulance is held before it
                becomes eligible for automatic release
        """
        self.store = store
        self.hold_duration = hold_duration or timedelta(minutes=Config.HOLD_DURATION_MINUTES)

        logger.info(f"AllocationEngine initialized (hold={self.hold_duration})")

    # ========================
    # Assignment
    # ========================

    async def assign_ambulance(
        self,
        report_id: str,
        ambulance_id: str,
        hospital_id: str,
        report_version: Optional[int] = None,
        ambulance_version: Optional[int] = None,
        hospital_version: Optional[int] = None,
    ) -> AssignmentResult:
        """
        Dispatch an ambulance to a report and reserve a bed at a hospital.

        The ``*_version`` arguments are the versions the caller's screen was
        showing; if any entity has moved on since, ConflictError is raised
        and nothing changes.

        Raises:
            NotFoundError, ConflictError, ReportNotPendingError,
            AmbulanceUnavailableError, HospitalFullError
        """
        keys: List[Key] = [
            (EntityKind.REPORT, report_id),
            (EntityKind.AMBULANCE, ambulance_id),
            (EntityKind.HOSPITAL, hospital_id),
        ]
        async with self.store.transaction(*keys) as tx:
            report = tx.get(EntityKind.REPORT, report_id, expected_version=report_version)
            ambulance = tx.get(EntityKind.AMBULANCE, ambulance_id, expected_version=ambulance_version)
            hospital = tx.get(EntityKind.HOSPITAL, hospital_id, expected_version=hospital_version)

            if report.status != ReportStatus.REPORTED:
                raise ReportNotPendingError(
                    f"Report {report_id} is {report.status.value}, not reported",
                    EntityKind.REPORT.value,
                    report_id,
                )
            if ambulance.status != AmbulanceStatus.AVAILABLE:
                raise AmbulanceUnavailableError(
                    f"Ambulance {ambulance.vehicle_number} is {ambulance.status.value}",
                    EntityKind.AMBULANCE.value,
                    ambulance_id,
                )
            if hospital.available_beds <= 0:
                raise HospitalFullError(
                    f"Hospital {hospital.name} has no available beds",
                    EntityKind.HOSPITAL.value,
                    hospital_id,
                )

            hold_expiry = self.store.now() + self.hold_duration

            tx.update(report, {
                "status": ReportStatus.EN_ROUTE,
                "assigned_ambulance": ambulance_id,
                "assigned_hospital": hospital_id,
            }, MutationAction.ASSIGNED)
            tx.update(ambulance, {
                "status": AmbulanceStatus.BUSY,
                "assigned_hospital": hospital_id,
                "assigned_report": report_id,
                "hold_expiry": hold_expiry,
            }, MutationAction.ASSIGNED)
            tx.update(hospital, {
                "available_beds": hospital.available_beds - 1,
            }, MutationAction.ASSIGNED)

        logger.info(
            f"Assigned ambulance {ambulance_id} to report {report_id} "
            f"at hospital {hospital_id} (hold until {hold_expiry.isoformat()})"
        )
        return AssignmentResult(
            report=self.store.get(EntityKind.REPORT, report_id),
            ambulance=self.store.get(EntityKind.AMBULANCE, ambulance_id),
            hospital=self.store.get(EntityKind.HOSPITAL, hospital_id),
        )

    # ========================
    # Release
    # ========================

    async def release_ambulance(
        self,
        ambulance_id: str,
        caller_hospital_id: Optional[str] = None,
        automatic: bool = False,
        expected_version: Optional[int] = None,
    ) -> ReleaseResult:
        """
        Free a busy ambulance, complete its report and return the bed.

        The bed goes back to the hospital recorded on the ambulance at
        assignment time, capped at the hospital's total capacity.

        Args:
            ambulance_id: Ambulance to release
            caller_hospital_id: Hospital the caller is scoped to, if any
            automatic: True when triggered by hold expiry
            expected_version: Ambulance version the caller saw

        Raises:
            NotFoundError, AmbulanceNotBusyError, OutOfScopeError,
            ConflictError (ambulance was re-dispatched while we waited)
        """
        # Discover which hospital and report the hold involves, then lock
        # all three and confirm nothing moved in between.
        snapshot = self.store.get(EntityKind.AMBULANCE, ambulance_id)
        if expected_version is not None and snapshot.version != expected_version:
            raise ConflictError(EntityKind.AMBULANCE.value, ambulance_id, expected_version, snapshot.version)
        hospital_id = snapshot.assigned_hospital
        report_id = snapshot.assigned_report

        keys: List[Key] = [(EntityKind.AMBULANCE, ambulance_id)]
        if hospital_id:
            keys.append((EntityKind.HOSPITAL, hospital_id))
        if report_id:
            keys.append((EntityKind.REPORT, report_id))

        action = MutationAction.AUTO_RELEASED if automatic else MutationAction.RELEASED

        async with self.store.transaction(*keys) as tx:
            ambulance = tx.get(EntityKind.AMBULANCE, ambulance_id, expected_version=expected_version)
            if ambulance.status != AmbulanceStatus.BUSY:
                raise AmbulanceNotBusyError(
                    f"Ambulance {ambulance.vehicle_number} is {ambulance.status.value}, not busy",
                    EntityKind.AMBULANCE.value,
                    ambulance_id,
                )
            if ambulance.assigned_hospital != hospital_id or ambulance.assigned_report != report_id:
                raise ConflictError(
                    EntityKind.AMBULANCE.value, ambulance_id, snapshot.version, ambulance.version
                )
            if caller_hospital_id is not None and caller_hospital_id != hospital_id:
                raise OutOfScopeError(
                    f"Ambulance {ambulance.vehicle_number} is not assigned to hospital {caller_hospital_id}",
                    EntityKind.AMBULANCE.value,
                    ambulance_id,
                )

            hospital = tx.get(EntityKind.HOSPITAL, hospital_id)
            report = tx.find(EntityKind.REPORT, report_id) if report_id else None

            tx.update(ambulance, {
                "status": AmbulanceStatus.AVAILABLE,
                "assigned_hospital": None,
                "assigned_report": None,
                "hold_expiry": None,
            }, action)
            if report is not None and report.status == ReportStatus.EN_ROUTE:
                tx.update(report, {"status": ReportStatus.COMPLETED}, action)
            tx.update(hospital, {
                "available_beds": min(hospital.available_beds + 1, hospital.total_beds),
            }, action)

        logger.info(
            f"{'Auto-released' if automatic else 'Released'} ambulance {ambulance_id} "
            f"from hospital {hospital_id}"
        )
        return ReleaseResult(
            ambulance=self.store.get(EntityKind.AMBULANCE, ambulance_id),
            hospital=self.store.get(EntityKind.HOSPITAL, hospital_id),
            report=self.store.get(EntityKind.REPORT, report_id) if report is not None else None,
            automatic=automatic,
        )

    # ========================
    # Bed overwrite
    # ========================

    async def update_bed_availability(
        self,
        hospital_id: str,
        available_beds: int,
        available_icu_beds: int,
        expected_version: Optional[int] = None,
        caller_hospital_id: Optional[str] = None,
    ) -> Hospital:
        """
        Overwrite a hospital's counters with the staff-reported figures.

        Passing ``expected_version`` turns the overwrite into a
        compare-and-swap, so a count entered while an assignment was in
        flight fails with ConflictError instead of undoing the decrement.

        Raises:
            NotFoundError, ConflictError, OutOfRangeError, OutOfScopeError
        """
        if caller_hospital_id is not None and caller_hospital_id != hospital_id:
            raise OutOfScopeError(
                f"Caller scoped to hospital {caller_hospital_id} cannot update {hospital_id}",
                EntityKind.HOSPITAL.value,
                hospital_id,
            )

        async with self.store.transaction((EntityKind.HOSPITAL, hospital_id)) as tx:
            hospital = tx.get(EntityKind.HOSPITAL, hospital_id, expected_version=expected_version)

            if not 0 <= available_beds <= hospital.total_beds:
                raise OutOfRangeError(
                    f"available_beds must be between 0 and {hospital.total_beds}, got {available_beds}",
                    EntityKind.HOSPITAL.value,
                    hospital_id,
                )
            if not 0 <= available_icu_beds <= hospital.icu_beds:
                raise OutOfRangeError(
                    f"available_icu_beds must be between 0 and {hospital.icu_beds}, got {available_icu_beds}",
                    EntityKind.HOSPITAL.value,
                    hospital_id,
                )

            tx.update(hospital, {
                "available_beds": available_beds,
                "available_icu_beds": available_icu_beds,
            }, MutationAction.BEDS_UPDATED)

        logger.info(
            f"Hospital {hospital_id} beds set to {available_beds} regular, {available_icu_beds} ICU"
        )
        return self.store.get(EntityKind.HOSPITAL, hospital_id)

    # ========================
    # Creation
    # ========================

    async def create_emergency_report(
        self,
        fields: Union[EmergencyReportCreate, Dict[str, Any]]
    ) -> EmergencyReport:
        """
        Insert a new report with status ``reported`` and no assignment.

        Raises:
            ValidationFailedError: payload rejected by the intake model
        """
        payload = _parse(EmergencyReportCreate, fields, EntityKind.REPORT.value)
        data = payload.model_dump(exclude={"id"})
        report = EmergencyReport(
            id=payload.id or EmergencyReport.new_id(),
            status=ReportStatus.REPORTED,
            assigned_ambulance=None,
            assigned_hospital=None,
            **data,
        )
        created = await self.store.insert(report)
        logger.info(f"Created report {created.id} ({created.severity.value})")
        return created

    async def register_hospital(
        self,
        fields: Union[HospitalCreate, Dict[str, Any]]
    ) -> Hospital:
        """Provision a hospital. Availability defaults to full capacity."""
        payload = _parse(HospitalCreate, fields, EntityKind.HOSPITAL.value)
        data = payload.model_dump(exclude={"id", "available_beds", "available_icu_beds"})
        hospital = Hospital(
            id=payload.id or Hospital.new_id(),
            available_beds=payload.total_beds if payload.available_beds is None else payload.available_beds,
            available_icu_beds=payload.icu_beds if payload.available_icu_beds is None else payload.available_icu_beds,
            **data,
        )
        created = await self.store.insert(hospital)
        logger.info(f"Registered hospital {created.id} ({created.name}, {created.total_beds} beds)")
        return created

    async def register_ambulance(
        self,
        fields: Union[AmbulanceCreate, Dict[str, Any]]
    ) -> Ambulance:
        """
        Register a fleet vehicle.

        Raises:
            ValidationFailedError: bad payload or ``busy`` initial status
            DuplicateVehicleError: vehicle number already registered
        """
        payload = _parse(AmbulanceCreate, fields, EntityKind.AMBULANCE.value)
        ambulance = Ambulance(
            id=payload.id or Ambulance.new_id(),
            vehicle_number=payload.vehicle_number,
            current_location=payload.current_location,
            status=payload.status,
        )

        # Same-number registrations serialize on the vehicle key even when
        # their ids differ
        vehicle_key: Key = (EntityKind.AMBULANCE, f"vehicle:{ambulance.vehicle_number}")
        async with self.store.transaction(ambulance.key, vehicle_key) as tx:
            existing = self.store.list(
                EntityKind.AMBULANCE,
                lambda a: a.vehicle_number == ambulance.vehicle_number,
            )
            if existing:
                raise DuplicateVehicleError(
                    f"Vehicle number {ambulance.vehicle_number} is already registered",
                    EntityKind.AMBULANCE.value,
                    existing[0].id,
                )
            tx.insert(ambulance)

        logger.info(f"Registered ambulance {ambulance.id} ({ambulance.vehicle_number})")
        return self.store.get(EntityKind.AMBULANCE, ambulance.id)
