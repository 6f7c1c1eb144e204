"""Refreshing a published tool from its latest npm version."""

import structlog
from sqlalchemy.orm import Session

from ..auth import AuthenticatedUser, get_user_email
from ..context import AppContext
from ..db.models import ToolModel, ToolUpdateModel
from ..db.services import ToolService, ToolUpdateService
from ..enums import ToolStatus, ToolUpdateStatus
from ..errors import (
    BadRequestError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from ..schemas.intake import Outcome, ToolStatusRequest, ToolUpdateRequest
from .submission import clean_package_name

logger = structlog.get_logger()


class ToolUpdatePipeline:
    def __init__(self, context: AppContext, db: Session):
        self.context = context
        self.db = db
        self.tools = ToolService(db)
        self.updates = ToolUpdateService(db)

    async def process(self, request: ToolUpdateRequest, user: AuthenticatedUser) -> ToolModel:
        """Validate the latest version and copy it onto the tool row.

        On validation failure the update row is marked ``validation_failed``,
        admins and the tool owner are emailed, and ``ValidationFailedError``
        is raised.
        """
        record = self.updates.require(request.tool_update_id)
        package_name = clean_package_name(request.package_name)
        log = logger.bind(package=package_name, tool_update_id=record.id)

        if record.status != ToolUpdateStatus.PENDING.value:
            raise InvalidTransitionError(
                f'Tool update has already been processed (status "{record.status}")'
            )
        if record.package_name != package_name:
            raise BadRequestError(
                f'Package "{package_name}" does not match the tool update '
                f'for "{record.package_name}"'
            )
        tool = self._resolve_tool(record)
        if user.id not in (record.submitted_by, tool.user_id):
            raise ForbiddenError("You do not have permission to update this tool")

        metadata = await self.context.registry.fetch_package(package_name)
        validation = await self.context.validator.validate(metadata)
        version = metadata.version if isinstance(metadata.version, str) else None
        if not validation.valid:
            self.updates.mark(
                record, ToolUpdateStatus.VALIDATION_FAILED, validation.to_dict(), version
            )
            outcome = await self._notify_failure(tool, version or "", validation.errors)
            log.info("Tool update rejected", errors=len(validation.errors), outcome=outcome.model_dump())
            raise ValidationFailedError(
                "Package validation failed",
                errors=validation.errors,
                warnings=validation.warnings,
            )

        versions = await self.context.inspector.extract_version_info(package_name)
        tool = self.tools.apply_update(tool, validation.package, versions, actor_id=user.id)
        self.updates.mark(record, ToolUpdateStatus.VALIDATED, validation.to_dict(), version)
        log.info("Tool updated", tool_id=tool.id, version=tool.version)
        return tool

    def _resolve_tool(self, record: ToolUpdateModel) -> ToolModel:
        tool = self.tools.get(record.tool_id) if record.tool_id else None
        if tool is None:
            tool = self.tools.get_by_package(record.package_name)
        if tool is None or tool.package_name != record.package_name:
            raise NotFoundError(
                f'No published tool found for package "{record.package_name}"',
                step="npm_check",
            )
        return tool

    async def _notify_failure(self, tool: ToolModel, version: str, errors) -> Outcome:
        outcome = Outcome()
        notifier = self.context.notifier

        sent = await notifier.send_tool_update_admin(tool.name, version, errors)
        outcome.record("notify_admins", sent.success, sent.error)

        owner_email = get_user_email(self.db, tool.user_id)
        sent = await notifier.send_tool_update_developer(owner_email, tool.name, version, errors)
        outcome.record("notify_developer", sent.success, sent.error)
        return outcome


def update_tool_status(db: Session, request: ToolStatusRequest, user: AuthenticatedUser) -> ToolModel:
    return ToolService(db).set_status(request.tool_id, ToolStatus(request.status), user.id)
