"""
Tool submission pipeline.

npm_check -> validation -> structure_check / structure_validation ->
duplicate_check -> database. The failing step is carried on the raised
``IntakeError``; nothing is persisted unless every gate passes.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..context import AppContext
from ..db.models import ToolIntakeModel
from ..db.services import IntakeRepository
from ..errors import ValidationFailedError
from ..schemas.intake import (
    Outcome,
    SubmitToolRequest,
    is_valid_package_name,
    normalize_package_name,
)

logger = structlog.get_logger()


@dataclass
class SubmissionResult:
    intake: ToolIntakeModel
    warnings: List[str] = field(default_factory=list)
    outcome: Outcome = field(default_factory=Outcome)


def clean_package_name(raw: str) -> str:
    """Normalize and check an npm package name.

    Raises:
        ValidationFailedError: the name is not npm-shaped
    """
    package_name = normalize_package_name(raw)
    if not is_valid_package_name(package_name):
        raise ValidationFailedError(
            "Invalid npm package name format",
            errors=[f'"{package_name}" is not a valid npm package name'],
        )
    return package_name


class SubmissionPipeline:
    def __init__(self, context: AppContext, db: Session):
        self.context = context
        self.db = db
        self.intakes = IntakeRepository(db)

    async def submit(
        self, request: SubmitToolRequest, submitted_by: Optional[str] = None
    ) -> SubmissionResult:
        package_name = clean_package_name(request.package_name)
        log = logger.bind(package=package_name)

        metadata = await self.context.registry.fetch_package(package_name)
        log.info("Package resolved", version=metadata.version, step="npm_check")

        validation = await self.context.validator.validate(metadata)
        if not validation.valid:
            log.info("Package validation failed", errors=len(validation.errors), step="validation")
            raise ValidationFailedError(
                "Package validation failed",
                errors=validation.errors,
                warnings=validation.warnings,
            )

        report = await self.context.inspector.inspect(package_name)
        if not report.valid:
            log.info("Package structure invalid", errors=report.errors, step="structure_validation")
            raise ValidationFailedError(
                "Package structure validation failed",
                errors=report.errors,
                warnings=validation.warnings,
                step="structure_validation",
            )

        intake, outcome = self.intakes.create(
            package_name=package_name,
            package=validation.package,
            versions=report.versions,
            warnings=validation.warnings,
            category_ids=request.category_ids,
            submitted_by=submitted_by,
        )
        log.info("Intake created", intake_id=intake.id, min_api=intake.min_api, max_api=intake.max_api)

        submitted_on = intake.created_at.isoformat() if intake.created_at else ""
        sent = await self.context.notifier.send_tool_submission(
            intake.display_name, intake.description, submitted_on
        )
        outcome.record("notify_admins", sent.success, sent.error)

        return SubmissionResult(intake=intake, warnings=validation.warnings, outcome=outcome)
