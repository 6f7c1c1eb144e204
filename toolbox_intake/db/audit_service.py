"""
Audit trail writer.

Entries are added to the caller's session and committed together with the
change they describe; nothing here commits on its own.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..enums import AuditAction
from .audit_models import AuditEntryModel


class AuditService:
    """Usage:
        audit = AuditService(db)
        audit.record_status_change("ToolIntake", intake.id, "pending_review", "approved", actor_id=admin.id)
        db.commit()
    """

    def __init__(self, db: Session):
        self.db = db

    def _add(self, entity_type: str, entity_id: str, action: AuditAction, **fields: Any) -> AuditEntryModel:
        entry = AuditEntryModel(
            entity_type=entity_type, entity_id=entity_id, action=action.value, **fields
        )
        self.db.add(entry)
        return entry

    def record_created(
        self,
        entity_type: str,
        entity_id: str,
        snapshot: Dict[str, Any],
        actor_id: Optional[str] = None,
    ) -> AuditEntryModel:
        return self._add(
            entity_type,
            entity_id,
            AuditAction.CREATED,
            actor_id=actor_id,
            to_status=snapshot.get("status"),
            changes=snapshot,
        )

    def record_status_change(
        self,
        entity_type: str,
        entity_id: str,
        from_status: str,
        to_status: str,
        actor_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> AuditEntryModel:
        return self._add(
            entity_type,
            entity_id,
            AuditAction.STATUS_CHANGED,
            actor_id=actor_id,
            from_status=from_status,
            to_status=to_status,
            note=note,
        )

    def record_link(
        self,
        entity_type: str,
        entity_id: str,
        links: Dict[str, List[Any]],
        actor_id: Optional[str] = None,
    ) -> AuditEntryModel:
        """Relations attached to an entity, e.g. ``{"category_ids": [1, 2]}``."""
        return self._add(entity_type, entity_id, AuditAction.LINKED, actor_id=actor_id, changes=links)

    def record_update(
        self,
        entity_type: str,
        entity_id: str,
        changes: Dict[str, Any],
        actor_id: Optional[str] = None,
    ) -> AuditEntryModel:
        return self._add(entity_type, entity_id, AuditAction.UPDATED, actor_id=actor_id, changes=changes)

    def history(self, entity_type: str, entity_id: str, limit: int = 100) -> List[AuditEntryModel]:
        """Entries for one entity, newest first."""
        return (
            self.db.query(AuditEntryModel)
            .filter(
                AuditEntryModel.entity_type == entity_type,
                AuditEntryModel.entity_id == entity_id,
            )
            .order_by(AuditEntryModel.recorded_at.desc())
            .limit(limit)
            .all()
        )
