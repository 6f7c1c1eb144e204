"""
Submission endpoint.

``POST /submit-tool`` runs the full intake pipeline. Failures are rendered
as ``{"error", "step", "details"}`` by the application's error handler.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import AuthenticatedUser
from ..context import AppContext
from ..deps import get_context, get_db, get_optional_user
from ..pipeline.submission import SubmissionPipeline
from ..schemas.intake import SubmissionData, SubmitToolRequest

router = APIRouter(tags=["submissions"])


@router.post("/submit-tool")
async def submit_tool(
    body: SubmitToolRequest,
    db: Session = Depends(get_db),
    context: AppContext = Depends(get_context),
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> Dict[str, Any]:
    """Validate an npm package and store it as a ``pending_review`` intake."""
    result = await SubmissionPipeline(context, db).submit(
        body, submitted_by=user.id if user else None
    )
    intake = result.intake
    data = SubmissionData(
        id=intake.id,
        packageName=intake.package_name,
        version=intake.version,
        displayName=intake.display_name,
        status=intake.status,
        warnings=result.warnings,
        minApi=intake.min_api,
        maxApi=intake.max_api,
    )
    return {
        "success": True,
        "message": "Tool intake request submitted successfully",
        "data": data.model_dump(),
        "outcome": result.outcome.model_dump(),
    }
