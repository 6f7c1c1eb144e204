"""
Intake pipeline stages: submission, review, conversion and tool updates.
"""

from .conversion import ConversionRunner, build_workflow_inputs, enqueue_conversion
from .review import ReviewController
from .submission import SubmissionPipeline, SubmissionResult, clean_package_name
from .updates import ToolUpdatePipeline, update_tool_status

__all__ = [
    "ConversionRunner",
    "ReviewController",
    "SubmissionPipeline",
    "SubmissionResult",
    "ToolUpdatePipeline",
    "build_workflow_inputs",
    "clean_package_name",
    "enqueue_conversion",
    "update_tool_status",
]
