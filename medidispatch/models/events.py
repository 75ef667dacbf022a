"""
Mutation events published by the change notifier.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from medidispatch.models.entity import EntityKind


class MutationAction(str, Enum):
    """What happened to the entity."""
    CREATED = "created"
    ASSIGNED = "assigned"
    RELEASED = "released"
    AUTO_RELEASED = "auto_released"
    BEDS_UPDATED = "beds_updated"


class MutationEvent(BaseModel):
    """
    One committed change to one entity.

    Events from the same transaction share a ``correlation_id``. The payload
    is a snapshot of the entity after the change; consumers that need the
    latest state should re-read it rather than trusting event order across
    kinds.
    """
    id: str = Field(..., description="Unique event ID")
    kind: EntityKind
    entity_id: str
    version: int
    action: MutationAction
    timestamp: datetime = Field(default_factory=datetime.now)
    payload: Dict[str, Any] = Field(default_factory=dict)
    correlation_id: Optional[str] = Field(None, description="ID linking events of one transaction")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "entity_id": self.entity_id,
            "version": self.version,
            "action": self.action.value,
            "timestamp": self.timestamp.isoformat(),
            "payload": self.payload,
            "correlation_id": self.correlation_id,
        }
