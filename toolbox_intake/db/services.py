"""
Database services for the Tool Intake service.

Status transitions are single conditional UPDATEs guarded on the expected
prior status; zero affected rows on an existing row means another request
got there first.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import desc, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..enums import (
    ACTIVE_JOB_STATUSES,
    REVIEWABLE_STATUSES,
    ConversionJobStatus,
    IntakeStatus,
    ReviewAction,
    ToolStatus,
    ToolUpdateStatus,
)
from ..errors import (
    ConflictError,
    ForbiddenError,
    IntakeError,
    InvalidTransitionError,
    NotFoundError,
)
from ..registry.inspector import VersionInfo
from ..schemas.intake import Outcome
from ..validation.validator import ValidatedPackage
from .audit_service import AuditService
from .models import (
    CategoryModel,
    ContributorModel,
    ConversionJobModel,
    ToolIntakeModel,
    ToolModel,
    ToolUpdateModel,
)

logger = structlog.get_logger()

INTAKE = "ToolIntake"
TOOL = "Tool"
JOB = "ConversionJob"
TOOL_UPDATE = "ToolUpdate"
ABANDONED_JOB_ERROR = "Conversion runner stopped before the job finished"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CategoryService:
    """Read access to the fixed category taxonomy."""

    def __init__(self, db: Session):
        self.db = db

    def list_categories(self) -> List[CategoryModel]:
        return self.db.query(CategoryModel).order_by(CategoryModel.name).all()

    def resolve(self, category_ids: Sequence[int]) -> Tuple[List[CategoryModel], List[int]]:
        """Split ``category_ids`` into known categories and unknown ids."""
        if not category_ids:
            return [], []
        found = (
            self.db.query(CategoryModel).filter(CategoryModel.id.in_(list(category_ids))).all()
        )
        known = {c.id for c in found}
        return found, [cid for cid in category_ids if cid not in known]


class IntakeRepository:
    """Service for managing tool intakes."""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)

    def get(self, intake_id: str) -> Optional[ToolIntakeModel]:
        return self.db.get(ToolIntakeModel, intake_id)

    def require(self, intake_id: str) -> ToolIntakeModel:
        intake = self.get(intake_id)
        if intake is None:
            raise NotFoundError("Tool intake not found")
        return intake

    def get_by_package(self, package_name: str) -> Optional[ToolIntakeModel]:
        return (
            self.db.query(ToolIntakeModel)
            .filter(ToolIntakeModel.package_name == package_name)
            .first()
        )

    def list_intakes(
        self, status: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[ToolIntakeModel]:
        """Intakes newest first, optionally filtered by status."""
        query = self.db.query(ToolIntakeModel)
        if status:
            query = query.filter(ToolIntakeModel.status == status)
        return (
            query.order_by(desc(ToolIntakeModel.created_at))
            .offset(offset)
            .limit(limit)
            .all()
        )

    def ensure_not_submitted(self, package_name: str) -> None:
        existing = self.get_by_package(package_name)
        if existing is not None:
            raise ConflictError(
                f"This package has already been submitted (Status: {existing.status})",
                step="duplicate_check",
            )

    def create(
        self,
        package_name: str,
        package: ValidatedPackage,
        versions: VersionInfo,
        warnings: List[str],
        category_ids: Sequence[int],
        submitted_by: Optional[str] = None,
    ) -> Tuple[ToolIntakeModel, Outcome]:
        """Insert the intake, then link categories and contributors.

        The intake row is the primary effect and is committed on its own;
        the relation writes are best-effort and reported in the outcome.

        Raises:
            ConflictError: an intake for ``package_name`` already exists
        """
        self.ensure_not_submitted(package_name)

        intake = ToolIntakeModel(
            package_name=package_name,
            version=package.version,
            display_name=package.display_name,
            description=package.description,
            license=package.license,
            icon=package.icon,
            csp_exceptions=package.csp_exceptions,
            configurations=package.configurations,
            features=package.features,
            min_api=versions.min_api,
            max_api=versions.max_api,
            submitted_by=submitted_by,
            status=IntakeStatus.PENDING_REVIEW.value,
            validation_warnings=warnings or None,
        )
        self.db.add(intake)
        try:
            self.db.flush()
            self.audit.record_created(
                INTAKE,
                intake.id,
                {"package_name": package_name, "version": package.version,
                 "status": IntakeStatus.PENDING_REVIEW.value},
                actor_id=submitted_by,
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.info("Duplicate intake rejected on insert", package=package_name)
            raise ConflictError(
                "This package has already been submitted", step="duplicate_check"
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to insert tool intake", package=package_name, error=str(e))
            raise IntakeError("Failed to save tool intake request", step="database") from e

        outcome = Outcome()
        self._link_categories(intake, category_ids, outcome)
        self._link_contributors(intake, package.contributors, outcome)
        self.db.refresh(intake)
        return intake, outcome

    def _link_categories(
        self, intake: ToolIntakeModel, category_ids: Sequence[int], outcome: Outcome
    ) -> None:
        try:
            categories, unknown = CategoryService(self.db).resolve(category_ids)
            intake.categories.extend(categories)
            if categories:
                self.audit.record_link(
                    INTAKE, intake.id, {"category_ids": [c.id for c in categories]},
                    actor_id=intake.submitted_by,
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Category link failed", intake_id=intake.id, error=str(e))
            outcome.record("link_categories", False, str(e))
            return
        if unknown:
            message = f"Unknown category ids: {', '.join(str(c) for c in unknown)}"
            logger.warning("Category link incomplete", intake_id=intake.id, unknown=unknown)
            outcome.record("link_categories", False, message)
        else:
            outcome.record("link_categories", True)

    def find_or_create_contributor(self, name: str, profile_url: Optional[str]) -> ContributorModel:
        """Shared contributor identity for ``(name, profile_url)``."""
        query = self.db.query(ContributorModel).filter(ContributorModel.name == name)
        if profile_url is None:
            query = query.filter(ContributorModel.profile_url.is_(None))
        else:
            query = query.filter(ContributorModel.profile_url == profile_url)
        existing = query.first()
        if existing is not None:
            return existing

        contributor = ContributorModel(name=name, profile_url=profile_url)
        self.db.add(contributor)
        self.db.flush()
        return contributor

    def _link_contributors(
        self,
        intake: ToolIntakeModel,
        contributors: Iterable[Dict[str, Optional[str]]],
        outcome: Outcome,
    ) -> None:
        try:
            linked = []
            for entry in contributors:
                contributor = self.find_or_create_contributor(entry["name"], entry.get("url"))
                if contributor not in intake.contributors:
                    intake.contributors.append(contributor)
                    linked.append(contributor)
            self.db.flush()
            self.audit.record_link(
                INTAKE, intake.id, {"contributor_ids": [c.id for c in linked]},
                actor_id=intake.submitted_by,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Contributor link failed", intake_id=intake.id, error=str(e))
            outcome.record("link_contributors", False, str(e))
            return
        outcome.record("link_contributors", True)

    def set_status(
        self,
        intake_id: str,
        action: ReviewAction,
        notes: Optional[str],
        reviewer_id: str,
    ) -> ToolIntakeModel:
        """Apply a review action.

        Raises:
            NotFoundError: unknown intake
            InvalidTransitionError: the intake is not awaiting review
            ConflictError: the intake changed between read and update
        """
        intake = self.require(intake_id)
        previous = intake.status
        allowed = [s.value for s in REVIEWABLE_STATUSES]
        if previous not in allowed:
            raise InvalidTransitionError(
                f'Cannot {action.value.replace("_", " ")} intake with status "{previous}". '
                "Only intakes pending review or needing changes can be reviewed."
            )

        target = action.target_status.value
        now = utcnow()
        result = self.db.execute(
            update(ToolIntakeModel)
            .where(ToolIntakeModel.id == intake_id, ToolIntakeModel.status.in_(allowed))
            .values(
                status=target,
                reviewer_notes=notes or None,
                reviewed_by=reviewer_id,
                reviewed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            raise ConflictError("Tool intake was modified by another request; reload and retry")

        self.audit.record_status_change(
            INTAKE, intake_id, previous, target, actor_id=reviewer_id, note=notes
        )
        self.db.commit()
        self.db.refresh(intake)
        logger.info(
            "Intake reviewed", intake_id=intake_id, action=action.value, status=target
        )
        return intake

    def mark_converted(self, intake_id: str, actor_id: Optional[str] = None) -> None:
        """Flip ``approved`` to ``converted_to_tool``.

        Raises:
            ConflictError: the intake is no longer ``approved``
        """
        result = self.db.execute(
            update(ToolIntakeModel)
            .where(
                ToolIntakeModel.id == intake_id,
                ToolIntakeModel.status == IntakeStatus.APPROVED.value,
            )
            .values(status=IntakeStatus.CONVERTED_TO_TOOL.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            raise ConflictError("Tool intake is no longer approved; it may already be converted")
        self.audit.record_status_change(
            INTAKE,
            intake_id,
            IntakeStatus.APPROVED.value,
            IntakeStatus.CONVERTED_TO_TOOL.value,
            actor_id=actor_id,
        )
        self.db.commit()


class ToolService:
    """Service for published tools."""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)

    def get(self, tool_id: str) -> Optional[ToolModel]:
        return self.db.get(ToolModel, tool_id)

    def get_by_package(self, package_name: str) -> Optional[ToolModel]:
        return self.db.query(ToolModel).filter(ToolModel.package_name == package_name).first()

    def link_categories(self, tool: ToolModel, category_ids: Sequence[int]) -> Optional[str]:
        """Attach categories to ``tool``; returns an error message on failure."""
        try:
            categories, unknown = CategoryService(self.db).resolve(category_ids)
            for category in categories:
                if category not in tool.categories:
                    tool.categories.append(category)
            self.audit.record_link(TOOL, tool.id, {"category_ids": [c.id for c in categories]})
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Tool category link failed", tool_id=tool.id, error=str(e))
            return str(e)
        if unknown:
            return f"Unknown category ids: {', '.join(str(c) for c in unknown)}"
        return None

    def set_status(self, tool_id: str, status: ToolStatus, user_id: str) -> ToolModel:
        """Owner-only status change.

        Raises:
            NotFoundError: unknown tool
            ForbiddenError: ``user_id`` does not own the tool
        """
        tool = self.get(tool_id)
        if tool is None:
            raise NotFoundError("Tool not found")
        if tool.user_id != user_id:
            raise ForbiddenError("You do not have permission to update this tool")

        previous = tool.status
        tool.status = status.value
        tool.updated_at = utcnow()
        self.audit.record_status_change(TOOL, tool.id, previous, status.value, actor_id=user_id)
        self.db.commit()
        self.db.refresh(tool)
        return tool

    def apply_update(
        self, tool: ToolModel, package: ValidatedPackage, versions: VersionInfo,
        actor_id: Optional[str] = None,
    ) -> ToolModel:
        """Refresh ``tool`` from a validated package version."""
        previous_version = tool.version
        tool.name = package.display_name
        tool.description = package.description
        tool.license = package.license
        tool.csp_exceptions = package.csp_exceptions
        tool.configurations = package.configurations
        tool.version = package.version
        tool.features = package.features
        tool.min_api = versions.min_api
        tool.max_api = versions.max_api
        tool.updated_at = utcnow()
        self.audit.record_update(
            TOOL, tool.id, {"version": [previous_version, package.version]}, actor_id=actor_id
        )
        self.db.commit()
        self.db.refresh(tool)
        return tool


class ToolUpdateService:
    """Service for tool update requests."""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)

    def require(self, update_id: str) -> ToolUpdateModel:
        record = self.db.get(ToolUpdateModel, update_id)
        if record is None:
            raise NotFoundError("Tool update not found")
        return record

    def mark(
        self,
        record: ToolUpdateModel,
        status: ToolUpdateStatus,
        validation_result: Dict[str, Any],
        version: Optional[str] = None,
    ) -> ToolUpdateModel:
        previous = record.status
        record.status = status.value
        record.validation_result = validation_result
        if version:
            record.version = version
        self.audit.record_status_change(
            TOOL_UPDATE, record.id, previous, status.value, actor_id=record.submitted_by
        )
        self.db.commit()
        self.db.refresh(record)
        return record


class JobService:
    """Service for conversion jobs."""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditService(db)

    def get(self, job_id: str) -> Optional[ConversionJobModel]:
        return self.db.get(ConversionJobModel, job_id)

    def require(self, job_id: str) -> ConversionJobModel:
        job = self.get(job_id)
        if job is None:
            raise NotFoundError("Conversion job not found")
        return job

    def active_job_for(self, intake_id: str) -> Optional[ConversionJobModel]:
        return (
            self.db.query(ConversionJobModel)
            .filter(
                ConversionJobModel.intake_id == intake_id,
                ConversionJobModel.status.in_([s.value for s in ACTIVE_JOB_STATUSES]),
            )
            .first()
        )

    def enqueue(self, intake_id: str, requested_by: Optional[str]) -> ConversionJobModel:
        """Queue a conversion; one active job per intake.

        Raises:
            ConflictError: a queued or running job already exists
        """
        active = self.active_job_for(intake_id)
        if active is not None:
            raise ConflictError(
                f"A conversion is already {active.status} for this intake",
                details={"jobId": active.id},
            )
        job = ConversionJobModel(
            intake_id=intake_id,
            status=ConversionJobStatus.QUEUED.value,
            requested_by=requested_by,
            queued_at=utcnow(),
        )
        self.db.add(job)
        self.db.flush()
        self.audit.record_created(JOB, job.id, {"intake_id": intake_id, "status": job.status},
                              actor_id=requested_by)
        self.db.commit()
        self.db.refresh(job)
        logger.info("Conversion job queued", job_id=job.id, intake_id=intake_id)
        return job

    def fail_abandoned(
        self, stale_after_seconds: float, intake_id: Optional[str] = None
    ) -> List[str]:
        """Fail running jobs whose runner died before finishing them.

        A job still ``running`` after ``stale_after_seconds`` has outlived
        the workflow poll bound, so nothing is waiting on it anymore.

        Returns:
            Ids of the jobs marked failed
        """
        cutoff = utcnow() - timedelta(seconds=stale_after_seconds)
        query = self.db.query(ConversionJobModel.id).filter(
            ConversionJobModel.status == ConversionJobStatus.RUNNING.value,
            ConversionJobModel.started_at < cutoff,
        )
        if intake_id is not None:
            query = query.filter(ConversionJobModel.intake_id == intake_id)

        failed = []
        for (job_id,) in query.all():
            result = self.db.execute(
                update(ConversionJobModel)
                .where(
                    ConversionJobModel.id == job_id,
                    ConversionJobModel.status == ConversionJobStatus.RUNNING.value,
                )
                .values(
                    status=ConversionJobStatus.FAILED.value,
                    error=ABANDONED_JOB_ERROR,
                    error_status_code=500,
                    finished_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                continue
            self.audit.record_status_change(
                JOB,
                job_id,
                ConversionJobStatus.RUNNING.value,
                ConversionJobStatus.FAILED.value,
                note=ABANDONED_JOB_ERROR,
            )
            failed.append(job_id)
        self.db.commit()
        for job_id in failed:
            logger.warning("Abandoned conversion job failed", job_id=job_id)
        return failed

    def next_queued(self) -> Optional[ConversionJobModel]:
        return (
            self.db.query(ConversionJobModel)
            .filter(ConversionJobModel.status == ConversionJobStatus.QUEUED.value)
            .order_by(ConversionJobModel.queued_at.asc())
            .first()
        )

    def claim(self, job_id: str, worker_id: str) -> Optional[ConversionJobModel]:
        """Atomically move ``job_id`` from queued to running; None if taken."""
        result = self.db.execute(
            update(ConversionJobModel)
            .where(
                ConversionJobModel.id == job_id,
                ConversionJobModel.status == ConversionJobStatus.QUEUED.value,
            )
            .values(
                status=ConversionJobStatus.RUNNING.value,
                started_at=utcnow(),
                assigned_to=worker_id,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 0:
            logger.debug("Conversion job claimed elsewhere", job_id=job_id)
            return None
        job = self.require(job_id)
        self.db.refresh(job)
        return job

    def finish(
        self,
        job: ConversionJobModel,
        status: ConversionJobStatus,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        error_status_code: Optional[int] = None,
        outcome: Optional[Dict[str, Any]] = None,
    ) -> ConversionJobModel:
        previous = job.status
        job.status = status.value
        job.result = result
        job.error = error
        job.error_status_code = error_status_code
        job.outcome = outcome
        job.finished_at = utcnow()
        self.audit.record_status_change(
            JOB, job.id, previous, status.value, actor_id=job.requested_by, note=error
        )
        self.db.commit()
        self.db.refresh(job)
        return job
