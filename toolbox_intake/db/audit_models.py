"""
Audit trail for intakes, tools, tool updates and conversion jobs.

One row per creation, relation link, field update or status transition.
Status transitions keep their endpoints in dedicated columns so a history
can be read without unpacking JSON.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, Column, DateTime, Enum, Index, String, Text

from ..enums import AuditAction
from .base import Base

audit_action_enum = Enum(*[a.value for a in AuditAction], name="audit_action")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEntryModel(Base):
    __tablename__ = "audit_entries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    entity_type = Column(String(32), nullable=False)
    entity_id = Column(String(36), nullable=False)
    action = Column(audit_action_enum, nullable=False)
    # None when the pipeline acted on its own (e.g. the worker)
    actor_id = Column(String(36), nullable=True, index=True)

    from_status = Column(String(32), nullable=True)
    to_status = Column(String(32), nullable=True)
    changes = Column(JSON, nullable=True)
    note = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_audit_entries_entity", "entity_type", "entity_id", "recorded_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "recorded_at": self.recorded_at.isoformat() if self.recorded_at else None,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_id": self.actor_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changes": self.changes,
            "note": self.note,
        }
