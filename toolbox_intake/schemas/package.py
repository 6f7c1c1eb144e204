"""
Package metadata as resolved from the npm registry.

Values are kept exactly as published (they are untrusted JSON); the
validator decides what shapes are acceptable.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class PackageMetadata:
    """The ``latest`` version document of a published tool package."""

    name: Any
    version: Any
    description: Any = None
    license: Any = None
    display_name: Any = None
    contributors: Any = None
    csp_exceptions: Any = None
    icon: Any = None
    configurations: Any = None
    features: Any = None
    tarball_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_version_document(cls, document: Dict[str, Any]) -> "PackageMetadata":
        dist = document.get("dist") if isinstance(document.get("dist"), dict) else {}
        return cls(
            name=document.get("name"),
            version=document.get("version"),
            description=document.get("description"),
            license=document.get("license"),
            display_name=document.get("displayName"),
            contributors=document.get("contributors"),
            csp_exceptions=document.get("cspExceptions"),
            icon=document.get("icon"),
            configurations=document.get("configurations"),
            features=document.get("features"),
            tarball_url=dist.get("tarball"),
            raw=document,
        )
