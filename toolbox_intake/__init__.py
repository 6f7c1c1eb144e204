"""
Power Platform ToolBox Tool Intake

Validation, review and publishing pipeline for third-party tool submissions.
"""

import importlib.metadata

__version__ = importlib.metadata.version("toolbox-intake")

from .config import Settings, get_settings
from .enums import ConversionJobStatus, IntakeStatus, ReviewAction, ToolStatus
from .errors import IntakeError

__all__ = [
    "ConversionJobStatus",
    "IntakeError",
    "IntakeStatus",
    "ReviewAction",
    "Settings",
    "ToolStatus",
    "get_settings",
]
