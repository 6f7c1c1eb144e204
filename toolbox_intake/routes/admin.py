"""
Admin endpoints: review queue, review actions, conversion jobs.

All endpoints are prefixed with /admin and require the admin role.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response
from sqlalchemy.orm import Session

from ..auth import AuthenticatedUser
from ..context import AppContext
from ..db.audit_service import AuditService
from ..db.services import INTAKE, IntakeRepository, JobService
from ..deps import get_context, get_db, require_admin
from ..enums import IntakeStatus
from ..errors import ConflictError
from ..pipeline.conversion import ConversionRunner, enqueue_conversion
from ..pipeline.review import ReviewController
from ..schemas.intake import ConversionJobView, ConvertRequest, ReviewRequest

router = APIRouter(prefix="/admin", tags=["admin"])


def get_conversion_runner(context: AppContext = Depends(get_context)) -> ConversionRunner:
    return ConversionRunner(context)


# =============================================================================
# Review queue
# =============================================================================


ALL_STATUSES = "all"
STATUS_FILTER_PATTERN = "^(" + "|".join([ALL_STATUSES] + [s.value for s in IntakeStatus]) + ")$"


@router.get("/tool-intakes")
async def list_intakes(
    status: Optional[str] = Query(None, pattern=STATUS_FILTER_PATTERN),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Dict[str, Any]:
    """List intakes newest first with contributors and categories flattened."""
    intakes = IntakeRepository(db).list_intakes(
        status=None if status == ALL_STATUSES else status, limit=limit, offset=offset
    )
    return {"success": True, "data": [i.to_dict() for i in intakes]}


@router.post("/tool-intakes")
async def review_intake(
    body: ReviewRequest,
    db: Session = Depends(get_db),
    context: AppContext = Depends(get_context),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Dict[str, Any]:
    intake, outcome = await ReviewController(context, db).review(body, admin)
    return {
        "success": True,
        "message": f"Tool intake {intake.status} successfully",
        "data": intake.to_dict(),
        "outcome": outcome.model_dump(),
    }


@router.get("/tool-intakes/{intake_id}/history")
async def intake_history(
    intake_id: str,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Dict[str, Any]:
    """Audit trail of an intake, newest first."""
    IntakeRepository(db).require(intake_id)
    entries = AuditService(db).history(INTAKE, intake_id, limit=limit)
    return {"success": True, "data": [e.to_dict() for e in entries]}


# =============================================================================
# Conversion
# =============================================================================


@router.post("/tool-intakes/convert", status_code=202)
async def convert_intake(
    body: ConvertRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    context: AppContext = Depends(get_context),
    runner: ConversionRunner = Depends(get_conversion_runner),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Dict[str, Any]:
    """Queue a conversion job, or run it in the request when ``wait`` is set."""
    job = enqueue_conversion(context, db, body.intake_id, admin.id)

    if body.wait:
        finished = await runner.run_job(job.id, reraise=True)
        if finished is None:
            raise ConflictError("Conversion job was claimed by another runner")
        response.status_code = 200
        return {
            "success": True,
            "message": "Tool created successfully",
            "data": finished.result,
            "outcome": finished.outcome,
        }

    if context.settings.conversion_run_inline:
        background_tasks.add_task(runner.run_job, job.id)
    return {
        "success": True,
        "message": "Conversion queued",
        "data": {"jobId": job.id, "intakeId": job.intake_id, "status": job.status},
    }


@router.get("/conversion-jobs/{job_id}")
async def get_conversion_job(
    job_id: str,
    db: Session = Depends(get_db),
    admin: AuthenticatedUser = Depends(require_admin),
) -> Dict[str, Any]:
    job = JobService(db).require(job_id)
    view = ConversionJobView(
        jobId=job.id,
        intakeId=job.intake_id,
        status=job.status,
        result=job.result,
        error=job.error,
        outcome=job.outcome,
        queuedAt=job.queued_at.isoformat() if job.queued_at else None,
        startedAt=job.started_at.isoformat() if job.started_at else None,
        finishedAt=job.finished_at.isoformat() if job.finished_at else None,
    )
    return {"success": True, "data": view.model_dump()}
