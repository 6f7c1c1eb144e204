"""Admin review actions on tool intakes."""

from typing import Tuple

import structlog
from sqlalchemy.orm import Session

from ..auth import AuthenticatedUser, get_user_email
from ..context import AppContext
from ..db.models import ToolIntakeModel
from ..db.services import IntakeRepository
from ..enums import ReviewAction
from ..schemas.intake import Outcome, ReviewRequest

logger = structlog.get_logger()


class ReviewController:
    def __init__(self, context: AppContext, db: Session):
        self.context = context
        self.db = db
        self.intakes = IntakeRepository(db)

    async def review(
        self, request: ReviewRequest, reviewer: AuthenticatedUser
    ) -> Tuple[ToolIntakeModel, Outcome]:
        """Apply ``request.action``; only ``needs_changes`` emails the submitter."""
        intake = self.intakes.set_status(
            request.intake_id, request.action, request.reviewer_notes, reviewer.id
        )
        outcome = Outcome()

        if request.action == ReviewAction.NEEDS_CHANGES:
            recipient = get_user_email(self.db, intake.submitted_by)
            sent = await self.context.notifier.send_review_changes(
                recipient,
                intake.display_name,
                intake.created_at.isoformat() if intake.created_at else "",
                intake.reviewer_notes or "",
            )
            outcome.record("notify_submitter", sent.success, sent.error)

        return intake, outcome
