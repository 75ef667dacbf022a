"""
Typed errors raised by the entity store and the allocation engine.

Every error carries a stable ``kind`` plus the offending entity so callers
can decide between re-fetching and surfacing a hard failure.
"""

from typing import Any, Dict, List, Optional


class DispatchError(Exception):
    """Base class for all dispatch engine errors."""

    kind: str = "DispatchError"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        entity_kind: Optional[str] = None,
        entity_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.entity_kind = entity_kind
        self.entity_id = entity_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "kind": self.kind,
            "entity_kind": self.entity_kind,
            "entity_id": self.entity_id,
            "message": self.message,
        }


class NotFoundError(DispatchError):
    kind = "NotFound"
    http_status = 404

    def __init__(self, entity_kind: str, entity_id: str):
        super().__init__(f"{entity_kind} {entity_id} not found", entity_kind, entity_id)


class PreconditionFailedError(DispatchError):
    """A status or availability check did not hold."""

    kind = "PreconditionFailed"
    http_status = 409


class ReportNotPendingError(PreconditionFailedError):
    kind = "ReportNotPending"


class AmbulanceUnavailableError(PreconditionFailedError):
    kind = "AmbulanceUnavailable"


class HospitalFullError(PreconditionFailedError):
    kind = "HospitalFull"


class AmbulanceNotBusyError(PreconditionFailedError):
    kind = "AmbulanceNotBusy"


class ConflictError(DispatchError):
    """Optimistic concurrency collision. Callers re-read and retry."""

    kind = "Conflict"
    http_status = 409

    def __init__(
        self,
        entity_kind: str,
        entity_id: str,
        expected_version: int,
        actual_version: int,
    ):
        super().__init__(
            f"{entity_kind} {entity_id} is at version {actual_version}, "
            f"expected {expected_version}",
            entity_kind,
            entity_id,
        )
        self.expected_version = expected_version
        self.actual_version = actual_version

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["expected_version"] = self.expected_version
        data["actual_version"] = self.actual_version
        return data


class OutOfRangeError(DispatchError):
    kind = "OutOfRange"
    http_status = 422


class ValidationFailedError(DispatchError):
    """Payload rejected by the intake models."""

    kind = "ValidationFailed"
    http_status = 422

    def __init__(
        self,
        message: str,
        entity_kind: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message, entity_kind)
        self.errors = errors or []

    @classmethod
    def from_pydantic(cls, exc: Any, message: str, entity_kind: Optional[str] = None) -> "ValidationFailedError":
        """Build from a pydantic ValidationError, keeping only JSON-safe parts."""
        errors = [
            {
                "loc": [str(part) for part in err.get("loc", ())],
                "msg": err.get("msg", ""),
                "type": err.get("type", ""),
            }
            for err in exc.errors()
        ]
        return cls(message, entity_kind=entity_kind, errors=errors)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class DuplicateVehicleError(DispatchError):
    kind = "DuplicateVehicle"
    http_status = 409


class OutOfScopeError(DispatchError):
    """Caller's hospital scope does not cover the target entity."""

    kind = "OutOfScope"
    http_status = 403
