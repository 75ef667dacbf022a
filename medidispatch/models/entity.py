"""
Base model shared by every record kept in the entity store.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional, Tuple

from pydantic import BaseModel, Field


class EntityKind(str, Enum):
    """The three kinds of records the dispatch engine manages."""
    HOSPITAL = "hospital"
    AMBULANCE = "ambulance"
    REPORT = "report"


class Entity(BaseModel):
    """
    Versioned record.

    ``version`` starts at 1 on insert and is bumped by the store on every
    committed update; ``updated_at`` is stamped from the store clock.
    """
    KIND: ClassVar[EntityKind]
    ID_PREFIX: ClassVar[str] = "ent"

    id: str = Field(..., description="Stable identifier")
    version: int = Field(1, ge=1, description="Optimistic concurrency version")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple[EntityKind, str]:
        """Store key of this record."""
        return (self.KIND, self.id)

    @classmethod
    def new_id(cls) -> str:
        """Generate a fresh identifier for this kind."""
        return f"{cls.ID_PREFIX}_{uuid.uuid4().hex[:12]}"
