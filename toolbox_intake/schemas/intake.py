"""Request and response schemas for the intake API."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, conlist, constr, field_validator

from ..enums import ReviewAction, ToolStatus

NPM_PACKAGE_NAME = re.compile(r"^(@[a-z0-9-~][a-z0-9-._~]*/)?[a-z0-9-~][a-z0-9-._~]*$")


def normalize_package_name(value: str) -> str:
    return value.strip().lower()


def is_valid_package_name(value: str) -> bool:
    return bool(NPM_PACKAGE_NAME.match(value))


class OutcomeStep(BaseModel):
    """One best-effort side effect and whether it happened."""

    name: str
    ok: bool
    error: Optional[str] = None


class Outcome(BaseModel):
    steps: List[OutcomeStep] = Field(default_factory=list)

    def record(self, name: str, ok: bool, error: Optional[str] = None) -> None:
        self.steps.append(OutcomeStep(name=name, ok=ok, error=error))

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)


class SubmitToolRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    package_name: constr(min_length=1, max_length=214) = Field(alias="packageName")
    category_ids: conlist(int, min_length=1, max_length=3) = Field(alias="categoryIds")

    @field_validator("category_ids")
    @classmethod
    def unique_categories(cls, value: List[int]) -> List[int]:
        return list(dict.fromkeys(value))


class ReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    intake_id: constr(min_length=1) = Field(alias="intakeId")
    action: ReviewAction
    reviewer_notes: Optional[str] = Field(default=None, alias="reviewerNotes")


class ConvertRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    intake_id: constr(min_length=1) = Field(alias="intakeId")
    wait: bool = Field(
        default=False,
        description="Run the conversion inside the request and return its result.",
    )


class ToolUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tool_update_id: constr(min_length=1) = Field(alias="toolUpdateId")
    package_name: constr(min_length=1, max_length=214) = Field(alias="packageName")


class ToolStatusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tool_id: constr(min_length=1) = Field(alias="toolId")
    status: ToolStatus


class SubmissionData(BaseModel):
    id: str
    packageName: str
    version: str
    displayName: str
    status: str
    warnings: List[str] = Field(default_factory=list)
    minApi: Optional[str] = None
    maxApi: Optional[str] = None


class ConversionJobView(BaseModel):
    jobId: str
    intakeId: str
    status: str
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    outcome: Optional[Dict[str, Any]] = None
    queuedAt: Optional[str] = None
    startedAt: Optional[str] = None
    finishedAt: Optional[str] = None
