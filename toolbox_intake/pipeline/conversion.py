"""
Conversion of approved intakes into published tools.

The request side only validates preconditions and queues a job. The
runner claims the job, dispatches the build workflow, waits for it, and
finalizes the intake once the workflow has upserted the tool row.
"""

import json
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.orm import Session

from ..auth import get_user_email
from ..ci.github import SUCCESS
from ..context import AppContext
from ..db.models import ConversionJobModel, ToolIntakeModel
from ..db.services import IntakeRepository, JobService, ToolService
from ..enums import ConversionJobStatus, IntakeStatus
from ..errors import (
    ConfigurationError,
    IntakeError,
    InvalidTransitionError,
    ToolMissingError,
    WorkflowFailedError,
)
from ..schemas.intake import Outcome

logger = structlog.get_logger()


def ensure_convertible(intake: ToolIntakeModel) -> None:
    if intake.status != IntakeStatus.APPROVED.value:
        raise InvalidTransitionError(
            f'Cannot convert intake with status "{intake.status}". '
            "Only approved intakes can be converted."
        )


def build_workflow_inputs(intake: ToolIntakeModel) -> Dict[str, str]:
    """String inputs for the build workflow's ``workflow_dispatch``."""
    configurations = intake.configurations or {}
    return {
        "tool_id": intake.package_name,
        "version": intake.version,
        "authors": ", ".join(c.name for c in intake.contributors),
        "repository": configurations.get("repository") or "",
        "website": configurations.get("website") or "",
        "icon": configurations.get("iconUrl") or json.dumps(intake.icon or {}),
        "readme": configurations.get("readmeUrl") or "",
        "license": intake.license,
        "csp_exceptions": json.dumps(intake.csp_exceptions or {}),
        "features": json.dumps(intake.features or {}),
        "submitted_by": intake.submitted_by or "",
    }


def enqueue_conversion(
    context: AppContext, db: Session, intake_id: str, requested_by: Optional[str]
) -> ConversionJobModel:
    """Queue a conversion after checking the intake is approved.

    A running job that outlived the workflow timeout is failed first so the
    admin can retrigger the conversion.

    Raises:
        ConfigurationError: the GitHub token is not configured
        NotFoundError: unknown intake
        InvalidTransitionError: the intake is not approved
        ConflictError: a conversion is already queued or running
    """
    if not context.workflows.token:
        raise ConfigurationError("GitHub token not configured")
    intake = IntakeRepository(db).require(intake_id)
    ensure_convertible(intake)
    jobs = JobService(db)
    jobs.fail_abandoned(context.settings.conversion_stale_after_seconds(), intake_id=intake.id)
    return jobs.enqueue(intake.id, requested_by)


class ConversionRunner:
    """Runs one queued conversion job to completion."""

    def __init__(self, context: AppContext):
        self.context = context
        self.settings = context.settings

    async def run_job(
        self, job_id: str, worker_id: str = "inline", reraise: bool = False
    ) -> Optional[ConversionJobModel]:
        """Claim and run ``job_id``; None if another runner claimed it first.

        With ``reraise`` the pipeline error is raised again after the job
        has been marked failed.
        """
        db = self.context.session()
        try:
            jobs = JobService(db)
            job = jobs.claim(job_id, worker_id)
            if job is None:
                return None
            return await self._execute(db, jobs, job, reraise)
        finally:
            db.close()

    async def _execute(
        self, db: Session, jobs: JobService, job: ConversionJobModel, reraise: bool
    ) -> ConversionJobModel:
        log = logger.bind(job_id=job.id, intake_id=job.intake_id)
        outcome = Outcome()
        try:
            result = await self._convert(db, job, outcome)
        except IntakeError as e:
            db.rollback()
            log.warning("Conversion failed", error=e.message, status_code=e.status_code)
            jobs.finish(
                job,
                ConversionJobStatus.FAILED,
                error=e.message,
                error_status_code=e.status_code,
                outcome=outcome.model_dump(),
            )
            if reraise:
                raise
            return job
        except Exception as e:
            db.rollback()
            log.exception("Conversion crashed", error=str(e))
            jobs.finish(
                job,
                ConversionJobStatus.FAILED,
                error="Internal server error",
                error_status_code=500,
                outcome=outcome.model_dump(),
            )
            if reraise:
                raise
            return job

        log.info("Conversion succeeded", tool_id=result["toolId"])
        return jobs.finish(
            job, ConversionJobStatus.SUCCEEDED, result=result, outcome=outcome.model_dump()
        )

    async def _convert(
        self, db: Session, job: ConversionJobModel, outcome: Outcome
    ) -> Dict[str, Any]:
        intakes = IntakeRepository(db)
        tools = ToolService(db)

        intake = intakes.require(job.intake_id)
        ensure_convertible(intake)

        conclusion = await self.context.workflows.run_workflow(
            self.settings.convert_workflow_file,
            build_workflow_inputs(intake),
            timeout_seconds=self.settings.workflow_timeout_seconds,
            poll_interval_seconds=self.settings.workflow_poll_interval_seconds,
        )
        if conclusion != SUCCESS:
            raise WorkflowFailedError(conclusion)

        # The workflow upserts the tool row; its absence is an inconsistency.
        tool = tools.get_by_package(intake.package_name)
        if tool is None:
            raise ToolMissingError(intake.package_name)

        intakes.mark_converted(intake.id, actor_id=job.requested_by)

        link_error = tools.link_categories(tool, [c.id for c in intake.categories])
        outcome.record("link_categories", link_error is None, link_error)

        recipient = get_user_email(db, intake.submitted_by)
        sent = await self.context.notifier.send_tool_published(
            recipient,
            tool.name,
            f"{self.settings.site_url.rstrip('/')}/tools/{tool.id}",
        )
        outcome.record("notify_submitter", sent.success, sent.error)

        return {
            "toolId": tool.id,
            "name": tool.name,
            "status": IntakeStatus.CONVERTED_TO_TOOL.value,
        }
