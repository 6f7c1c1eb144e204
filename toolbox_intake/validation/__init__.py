"""
Submission contract validation.
"""

from .reachability import UrlProbe, is_valid_url
from .validator import (
    APPROVED_LICENSES,
    PackageValidator,
    ValidatedPackage,
    ValidationResult,
)

__all__ = [
    "APPROVED_LICENSES",
    "PackageValidator",
    "UrlProbe",
    "ValidatedPackage",
    "ValidationResult",
    "is_valid_url",
]
