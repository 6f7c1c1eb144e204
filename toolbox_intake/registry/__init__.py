"""
npm registry access and tarball inspection.
"""

from .client import RegistryClient, encode_package_name
from .inspector import (
    InspectionReport,
    PackageInspector,
    VersionInfo,
    is_valid_semver,
)

__all__ = [
    "InspectionReport",
    "PackageInspector",
    "RegistryClient",
    "VersionInfo",
    "encode_package_name",
    "is_valid_semver",
]
