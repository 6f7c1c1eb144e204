"""Database package for the Tool Intake service."""

from .audit_models import AuditEntryModel
from .audit_service import AuditService
from .base import Base, create_db_engine, init_database, make_session_factory
from .models import (
    CategoryModel,
    ContributorModel,
    ConversionJobModel,
    ToolIntakeModel,
    ToolModel,
    ToolUpdateModel,
    UserProfileModel,
    UserRoleModel,
)

__all__ = [
    "AuditEntryModel",
    "AuditService",
    "Base",
    "CategoryModel",
    "ContributorModel",
    "ConversionJobModel",
    "ToolIntakeModel",
    "ToolModel",
    "ToolUpdateModel",
    "UserProfileModel",
    "UserRoleModel",
    "create_db_engine",
    "init_database",
    "make_session_factory",
]
