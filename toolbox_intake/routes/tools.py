"""Endpoints for published tools and the category taxonomy."""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import AuthenticatedUser
from ..context import AppContext
from ..db.services import CategoryService
from ..deps import get_context, get_current_user, get_db
from ..pipeline.updates import ToolUpdatePipeline, update_tool_status
from ..schemas.intake import ToolStatusRequest, ToolUpdateRequest

router = APIRouter(tags=["tools"])


@router.post("/tools/updates")
async def submit_tool_update(
    body: ToolUpdateRequest,
    db: Session = Depends(get_db),
    context: AppContext = Depends(get_context),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Dict[str, Any]:
    tool = await ToolUpdatePipeline(context, db).process(body, user)
    return {
        "success": True,
        "message": "Tool update validated successfully",
        "data": {"toolId": tool.id, "version": tool.version},
    }


@router.post("/tools/status")
async def set_tool_status(
    body: ToolStatusRequest,
    db: Session = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Dict[str, Any]:
    """Owner-only status change."""
    tool = update_tool_status(db, body, user)
    return {
        "success": True,
        "message": f"Tool status updated to {tool.status}",
        "data": {"toolId": tool.id, "status": tool.status},
    }


@router.get("/categories")
async def list_categories(db: Session = Depends(get_db)) -> Dict[str, Any]:
    categories = CategoryService(db).list_categories()
    return {"success": True, "data": [c.to_dict() for c in categories]}
