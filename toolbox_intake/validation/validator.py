"""
Package validator for tool submissions.

Checks resolved npm metadata against the submission contract. Every rule
is evaluated (no fail-fast) so a submitter can fix everything in one pass.
Hard errors block submission; warnings are informational.

Rules:
- name, version, displayName and description are non-empty strings
- license is one of APPROVED_LICENSES
- icon is ``{"dark": ..., "light": ...}`` with relative ``.svg`` paths
- contributors is a non-empty array; each entry has a name (a bad url warns)
- configurations.repository is a reachable URL
- configurations.website / funding are optional; problems only warn
- configurations.iconUrl, if present, is a reachable .png/.jpg/.jpeg on
  raw.githubusercontent.com
- configurations.readmeUrl is a reachable URL not on github.com
- cspExceptions, if present, maps directives to non-empty string arrays
- features, if present, holds ``multiConnection`` with an allowed value and
  nothing else besides the ``minAPI`` version marker
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple
from urllib.parse import urlparse

from ..enums import MultiConnection
from ..schemas.package import PackageMetadata
from .reachability import RAW_CONTENT_HOST, hostname, is_source_host, is_valid_url

APPROVED_LICENSES = [
    "MIT",
    "Apache-2.0",
    "BSD-2-Clause",
    "BSD-3-Clause",
    "GPL-2.0",
    "GPL-3.0",
    "LGPL-3.0",
    "ISC",
    "AGPL-3.0-only",
]

KNOWN_CSP_DIRECTIVES = [
    "connect-src",
    "script-src",
    "style-src",
    "img-src",
    "font-src",
    "frame-src",
    "media-src",
]

ICON_VARIANTS = ("dark", "light")
ICON_URL_EXTENSIONS = (".png", ".jpg", ".jpeg")
# minAPI is the compatibility marker read back from the packaged manifest.
ALLOWED_FEATURE_KEYS = ("multiConnection", "minAPI")

ERROR = "error"
WARNING = "warning"


class ReachabilityProbe(Protocol):
    async def is_reachable(self, url: str) -> bool: ...


@dataclass
class ValidatedPackage:
    """Normalized package info, present only when validation passes."""

    name: str
    version: str
    display_name: str
    description: str
    license: str
    icon: Dict[str, str]
    contributors: List[Dict[str, Optional[str]]]
    configurations: Dict[str, Any]
    csp_exceptions: Optional[Dict[str, List[str]]] = None
    features: Optional[Dict[str, str]] = None


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    package: Optional[ValidatedPackage] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "packageInfo": asdict(self.package) if self.package else None,
        }


def _non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def icon_path_problem(path: str) -> Optional[str]:
    """Describe why ``path`` is not an acceptable bundled icon path."""
    lowered = path.strip().lower()
    if lowered.startswith("http") or "://" in lowered:
        return "must be a relative path inside the package, not a URL"
    if lowered.startswith("/") or lowered.startswith("\\"):
        return "must be a relative path (no leading /)"
    if ".." in lowered:
        return "must not contain '..' path segments"
    if not lowered.endswith(".svg"):
        return "must reference an .svg file"
    return None


class _Collector:
    """Accumulates messages plus deferred reachability checks."""

    def __init__(self) -> None:
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.probes: List[Tuple[str, str, str]] = []

    def error(self, message: str) -> None:
        self.errors.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def probe(self, url: str, severity: str, message: str) -> None:
        self.probes.append((url, severity, message))


class PackageValidator:
    """Validates package metadata; URL reachability goes through ``probe``."""

    def __init__(self, probe: ReachabilityProbe):
        self.probe = probe

    async def validate(self, metadata: PackageMetadata) -> ValidationResult:
        out = _Collector()

        self._check_required_fields(metadata, out)
        self._check_license(metadata.license, out)
        self._check_icon(metadata.icon, out)
        contributors = self._check_contributors(metadata.contributors, out)
        self._check_configurations(metadata.configurations, out)
        self._check_csp_exceptions(metadata.csp_exceptions, out)
        self._check_features(metadata.features, out)

        if out.probes:
            results = await asyncio.gather(
                *(self.probe.is_reachable(url) for url, _, _ in out.probes)
            )
            for (url, severity, message), reachable in zip(out.probes, results):
                if reachable:
                    continue
                if severity == ERROR:
                    out.error(message)
                else:
                    out.warn(message)

        valid = not out.errors
        package = None
        if valid:
            package = ValidatedPackage(
                name=metadata.name,
                version=metadata.version,
                display_name=metadata.display_name,
                description=metadata.description,
                license=metadata.license,
                icon={k: metadata.icon[k] for k in ICON_VARIANTS},
                contributors=contributors,
                configurations=dict(metadata.configurations),
                csp_exceptions=metadata.csp_exceptions or None,
                features=metadata.features,
            )
        return ValidationResult(
            valid=valid, errors=out.errors, warnings=out.warnings, package=package
        )

    # ------------------------------------------------------------------

    def _check_required_fields(self, metadata: PackageMetadata, out: _Collector) -> None:
        if not _non_empty_string(metadata.name):
            out.error("Package name is required and must be a string")
        if not _non_empty_string(metadata.version):
            out.error("Package version is required and must be a string")
        if not _non_empty_string(metadata.display_name):
            out.error("displayName is required and must be a string")
        if not _non_empty_string(metadata.description):
            out.error("description is required and must be a string")

    def _check_license(self, license_value: Any, out: _Collector) -> None:
        if not license_value:
            out.error("license is required")
        elif license_value not in APPROVED_LICENSES:
            out.error(
                f'License "{license_value}" is not in the approved list. '
                f"Approved licenses: {', '.join(APPROVED_LICENSES)}"
            )

    def _check_icon(self, icon: Any, out: _Collector) -> None:
        if not isinstance(icon, dict):
            out.error("icon is required and must be an object with dark and light SVG paths")
            return
        for variant in ICON_VARIANTS:
            path = icon.get(variant)
            if not _non_empty_string(path):
                out.error(f"icon.{variant} is required and must be a string")
                continue
            problem = icon_path_problem(path)
            if problem:
                out.error(f'icon.{variant} "{path}" {problem}')

    def _check_contributors(
        self, contributors: Any, out: _Collector
    ) -> List[Dict[str, Optional[str]]]:
        normalized: List[Dict[str, Optional[str]]] = []
        if not isinstance(contributors, list):
            out.error("contributors is required and must be an array")
            return normalized
        if not contributors:
            out.error("At least one contributor is required")
            return normalized

        for index, contributor in enumerate(contributors):
            entry = contributor if isinstance(contributor, dict) else {}
            name = entry.get("name")
            if not _non_empty_string(name):
                out.error(f"Contributor at index {index} must have a name")
                continue
            url = entry.get("url")
            if url and not is_valid_url(url):
                out.warn(f'Contributor "{name}" has an invalid URL')
                url = None
            normalized.append({"name": name.strip(), "url": url or None})
        return normalized

    def _check_configurations(self, configurations: Any, out: _Collector) -> None:
        if not isinstance(configurations, dict):
            out.error("configurations is required and must include repository and readmeUrl")
            return

        repository = configurations.get("repository")
        if not _non_empty_string(repository):
            out.error("configurations.repository is required and must be a URL")
        elif not is_valid_url(repository):
            out.error("configurations.repository has an invalid URL format")
        else:
            out.probe(repository, ERROR, f"configurations.repository is not reachable: {repository}")

        for key in ("website", "funding"):
            value = configurations.get(key)
            if not value:
                continue
            if not is_valid_url(value):
                out.warn(f"configurations.{key} has an invalid URL format")
            else:
                out.probe(value, WARNING, f"configurations.{key} is not reachable: {value}")

        icon_url = configurations.get("iconUrl")
        if icon_url is not None:
            self._check_icon_url(icon_url, out)

        readme_url = configurations.get("readmeUrl")
        if not _non_empty_string(readme_url):
            out.error("configurations.readmeUrl is required and must be a URL")
        elif not is_valid_url(readme_url):
            out.error("configurations.readmeUrl has an invalid URL format")
        elif is_source_host(readme_url):
            out.error(
                "configurations.readmeUrl cannot be hosted on github.com; "
                f"use {RAW_CONTENT_HOST} or another domain"
            )
        else:
            out.probe(readme_url, ERROR, f"configurations.readmeUrl is not reachable: {readme_url}")

    def _check_icon_url(self, icon_url: Any, out: _Collector) -> None:
        if not isinstance(icon_url, str):
            out.error("configurations.iconUrl must be a URL")
            return
        if not is_valid_url(icon_url):
            out.error("configurations.iconUrl has an invalid URL format")
            return
        ok = True
        if hostname(icon_url) != RAW_CONTENT_HOST:
            out.error(f"configurations.iconUrl must be hosted on {RAW_CONTENT_HOST}")
            ok = False
        if not urlparse(icon_url).path.lower().endswith(ICON_URL_EXTENSIONS):
            out.error("configurations.iconUrl must point to a .png, .jpg or .jpeg file")
            ok = False
        if ok:
            out.probe(icon_url, ERROR, f"configurations.iconUrl is not reachable: {icon_url}")

    def _check_csp_exceptions(self, csp: Any, out: _Collector) -> None:
        if csp is None:
            return
        if not isinstance(csp, dict):
            out.error("cspExceptions must be an object mapping CSP directives to origin lists")
            return
        if not csp:
            out.error("cspExceptions must not be empty when provided")
            return
        for directive, values in csp.items():
            if directive not in KNOWN_CSP_DIRECTIVES:
                out.warn(f"Unknown CSP directive: {directive}")
            if (
                not isinstance(values, list)
                or not values
                or not all(_non_empty_string(v) for v in values)
            ):
                out.error(f'CSP directive "{directive}" must be a non-empty array of strings')

    def _check_features(self, features: Any, out: _Collector) -> None:
        if features is None:
            return
        if not isinstance(features, dict):
            out.error("features must be an object")
            return
        for key in features:
            if key not in ALLOWED_FEATURE_KEYS:
                out.error(
                    f'features contains invalid property "{key}"; '
                    f"only {' and '.join(ALLOWED_FEATURE_KEYS)} are allowed"
                )
        if "multiConnection" not in features:
            out.error("features.multiConnection is required when features is provided")
            return
        allowed = [m.value for m in MultiConnection]
        if features["multiConnection"] not in allowed:
            out.error(f"features.multiConnection must be one of: {', '.join(allowed)}")
