"""
SQLAlchemy models for the Tool Intake service.

Primary relationships (intake/tool <-> category, intake <-> contributor)
live in join tables, never solely as JSON arrays.
"""

import uuid
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..enums import (
    ConversionJobStatus,
    IntakeStatus,
    ToolStatus,
    ToolUpdateStatus,
)
from .base import Base


def generate_id() -> str:
    return str(uuid.uuid4())


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


intake_status_enum = Enum(
    *[s.value for s in IntakeStatus], name="tool_intake_status"
)
tool_status_enum = Enum(*[s.value for s in ToolStatus], name="tool_status")
tool_update_status_enum = Enum(
    *[s.value for s in ToolUpdateStatus], name="tool_update_status"
)
conversion_job_status_enum = Enum(
    *[s.value for s in ConversionJobStatus], name="conversion_job_status"
)


# =============================================================================
# Join Tables
# =============================================================================

tool_intake_categories = Table(
    "tool_intake_categories",
    Base.metadata,
    Column(
        "intake_id",
        String(36),
        ForeignKey("tool_intakes.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("category_id", Integer, ForeignKey("categories.id"), primary_key=True),
    Column("created_at", DateTime(timezone=True), default=func.now()),
)

tool_intake_contributors = Table(
    "tool_intake_contributors",
    Base.metadata,
    Column(
        "intake_id",
        String(36),
        ForeignKey("tool_intakes.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "contributor_id", String(36), ForeignKey("contributors.id"), primary_key=True
    ),
    Column("created_at", DateTime(timezone=True), default=func.now()),
)

tool_categories = Table(
    "tool_categories",
    Base.metadata,
    Column(
        "tool_id",
        String(36),
        ForeignKey("tools.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("category_id", Integer, ForeignKey("categories.id"), primary_key=True),
    Column("created_at", DateTime(timezone=True), default=func.now()),
)


# =============================================================================
# Taxonomy and identities
# =============================================================================


class CategoryModel(Base):
    """Fixed taxonomy entry an intake or tool may declare 1-3 of."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


class ContributorModel(Base):
    """Contributor identity, deduplicated on (name, profile_url)."""

    __tablename__ = "contributors"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(256), nullable=False)
    profile_url = Column(String(1024), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        UniqueConstraint("name", "profile_url", name="uq_contributors_name_profile_url"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "profile_url": self.profile_url}


class UserProfileModel(Base):
    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True)
    email = Column(String(320), nullable=True)
    name = Column(String(256), nullable=True)


class UserRoleModel(Base):
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    role = Column(String(50), nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)


# =============================================================================
# Intakes
# =============================================================================


class ToolIntakeModel(Base):
    """A submitted-but-not-yet-published tool awaiting review."""

    __tablename__ = "tool_intakes"

    id = Column(String(36), primary_key=True, default=generate_id)
    # Unique across every status: one intake per package, ever.
    package_name = Column(String(214), nullable=False, unique=True)
    version = Column(String(64), nullable=False)
    display_name = Column(String(256), nullable=False)
    description = Column(Text, nullable=False)
    license = Column(String(64), nullable=False)
    icon = Column(JSON, nullable=True)
    csp_exceptions = Column(JSON, nullable=True)
    configurations = Column(JSON, nullable=False, default=dict)
    features = Column(JSON, nullable=True)
    min_api = Column(String(64), nullable=True)
    max_api = Column(String(64), nullable=True)

    submitted_by = Column(String(36), nullable=True, index=True)
    status = Column(
        intake_status_enum,
        nullable=False,
        default=IntakeStatus.PENDING_REVIEW.value,
        index=True,
    )
    validation_warnings = Column(JSON, nullable=True)

    reviewer_notes = Column(Text, nullable=True)
    reviewed_by = Column(String(36), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=func.now(), onupdate=func.now()
    )

    categories = relationship(
        "CategoryModel", secondary=tool_intake_categories, lazy="selectin"
    )
    contributors = relationship(
        "ContributorModel", secondary=tool_intake_contributors, lazy="selectin"
    )

    __table_args__ = (Index("ix_tool_intakes_status_created", "status", "created_at"),)

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary with flattened relations."""
        return {
            "id": self.id,
            "package_name": self.package_name,
            "version": self.version,
            "display_name": self.display_name,
            "description": self.description,
            "license": self.license,
            "icon": self.icon,
            "csp_exceptions": self.csp_exceptions,
            "configurations": self.configurations,
            "features": self.features,
            "min_api": self.min_api,
            "max_api": self.max_api,
            "submitted_by": self.submitted_by,
            "status": self.status,
            "validation_warnings": self.validation_warnings,
            "reviewer_notes": self.reviewer_notes,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "categories": [c.to_dict() for c in self.categories],
            "contributors": [c.to_dict() for c in self.contributors],
        }


# =============================================================================
# Published tools
# =============================================================================


class ToolModel(Base):
    """Published tool record, upserted by the external build workflow."""

    __tablename__ = "tools"

    id = Column(String(36), primary_key=True, default=generate_id)
    package_name = Column(String(214), nullable=False, unique=True)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    version = Column(String(64), nullable=True)
    icon = Column(JSON, nullable=True)
    icon_url = Column(String(1024), nullable=True)
    readme_url = Column(String(1024), nullable=True)
    repository_url = Column(String(1024), nullable=True)
    website_url = Column(String(1024), nullable=True)
    license = Column(String(64), nullable=True)
    csp_exceptions = Column(JSON, nullable=True)
    configurations = Column(JSON, nullable=True)
    features = Column(JSON, nullable=True)
    min_api = Column(String(64), nullable=True)
    max_api = Column(String(64), nullable=True)
    status = Column(
        tool_status_enum, nullable=False, default=ToolStatus.ACTIVE.value, index=True
    )
    user_id = Column(String(36), nullable=True, index=True)
    downloads = Column(Integer, nullable=False, default=0)
    rating = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=func.now(), onupdate=func.now()
    )

    categories = relationship(
        "CategoryModel", secondary=tool_categories, lazy="selectin"
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "package_name": self.package_name,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "icon": self.icon,
            "icon_url": self.icon_url,
            "readme_url": self.readme_url,
            "repository_url": self.repository_url,
            "website_url": self.website_url,
            "license": self.license,
            "csp_exceptions": self.csp_exceptions,
            "configurations": self.configurations,
            "features": self.features,
            "min_api": self.min_api,
            "max_api": self.max_api,
            "status": self.status,
            "user_id": self.user_id,
            "downloads": self.downloads,
            "rating": self.rating,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "categories": [c.to_dict() for c in self.categories],
        }


class ToolUpdateModel(Base):
    """A request to refresh an already published tool from npm."""

    __tablename__ = "tool_updates"

    id = Column(String(36), primary_key=True, default=generate_id)
    tool_id = Column(String(36), ForeignKey("tools.id"), nullable=True, index=True)
    package_name = Column(String(214), nullable=False, index=True)
    version = Column(String(64), nullable=True)
    status = Column(
        tool_update_status_enum,
        nullable=False,
        default=ToolUpdateStatus.PENDING.value,
        index=True,
    )
    validation_result = Column(JSON, nullable=True)
    submitted_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=func.now(), onupdate=func.now()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tool_id": self.tool_id,
            "package_name": self.package_name,
            "version": self.version,
            "status": self.status,
            "validation_result": self.validation_result,
            "submitted_by": self.submitted_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# =============================================================================
# Conversion jobs
# =============================================================================


class ConversionJobModel(Base):
    """Queued build-and-publish request for an approved intake."""

    __tablename__ = "conversion_jobs"

    id = Column(String(36), primary_key=True, default=generate_id)
    intake_id = Column(
        String(36), ForeignKey("tool_intakes.id"), nullable=False, index=True
    )
    status = Column(
        conversion_job_status_enum,
        nullable=False,
        default=ConversionJobStatus.QUEUED.value,
        index=True,
    )
    requested_by = Column(String(36), nullable=True)
    assigned_to = Column(String(100), nullable=True)

    result = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    error_status_code = Column(Integer, nullable=True)
    outcome = Column(JSON, nullable=True)

    queued_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_conversion_jobs_status_queued", "status", "queued_at"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "intake_id": self.intake_id,
            "status": self.status,
            "requested_by": self.requested_by,
            "assigned_to": self.assigned_to,
            "result": self.result,
            "error": self.error,
            "outcome": self.outcome,
            "queued_at": _iso(self.queued_at),
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
        }
