from .intake import (
    ConversionJobView,
    ConvertRequest,
    Outcome,
    OutcomeStep,
    ReviewRequest,
    SubmissionData,
    SubmitToolRequest,
    ToolStatusRequest,
    ToolUpdateRequest,
    is_valid_package_name,
    normalize_package_name,
)
from .package import PackageMetadata

__all__ = [
    "ConversionJobView",
    "ConvertRequest",
    "Outcome",
    "OutcomeStep",
    "PackageMetadata",
    "ReviewRequest",
    "SubmissionData",
    "SubmitToolRequest",
    "ToolStatusRequest",
    "ToolUpdateRequest",
    "is_valid_package_name",
    "normalize_package_name",
]
