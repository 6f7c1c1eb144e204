"""
Structure and version inspection of published package tarballs.

The tarball is extracted into a per-call temporary directory that is
removed on every exit path. Structural checks gate submission; the
version markers (min/max API) are best-effort and degrade to ``None``.
"""

from __future__ import annotations

import io
import json
import re
import tarfile
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import structlog

from ..errors import IntakeError, TarballDownloadError
from .client import RegistryClient

logger = structlog.get_logger()

SEMVER_PATTERN = re.compile(
    r"^\d+\.\d+\.\d+"
    r"(-[0-9a-zA-Z-]+(\.[0-9a-zA-Z-]+)*)?"
    r"(\+[0-9a-zA-Z-]+(\.[0-9a-zA-Z-]+)*)?$"
)

LOCKFILE_NAME = "npm-shrinkwrap.json"
DIST_DIR = "dist"
DIST_INDEX = "dist/index.html"

# Tarballs larger than this are refused outright.
MAX_TARBALL_BYTES = 50_000_000


def is_valid_semver(value: Any) -> bool:
    """Return True if ``value`` is a semantic version string."""
    return isinstance(value, str) and bool(SEMVER_PATTERN.match(value))


class CorruptTarballError(Exception):
    """The downloaded archive could not be read as a gzipped tar."""


@dataclass
class VersionInfo:
    min_api: Optional[str] = None
    max_api: Optional[str] = None


@dataclass
class InspectionReport:
    """Result of inspecting one package tarball."""

    errors: List[str] = field(default_factory=list)
    versions: VersionInfo = field(default_factory=VersionInfo)

    @property
    def valid(self) -> bool:
        return not self.errors


def _is_safe_member(member: tarfile.TarInfo) -> bool:
    parts = Path(member.name).parts
    return ".." not in parts and not member.name.startswith("/")


@contextmanager
def extracted_package(tarball: bytes) -> Iterator[Path]:
    """Extract ``tarball`` into a scoped temp dir and yield the package root.

    npm tarballs normally nest everything under ``package/``; when they do
    not, the single top-level directory (or the extraction root) is used.
    """
    if len(tarball) > MAX_TARBALL_BYTES:
        raise CorruptTarballError(
            f"Package tarball exceeds {MAX_TARBALL_BYTES // 1_000_000} MB"
        )

    with tempfile.TemporaryDirectory(prefix="pptb-intake-") as tmp:
        root = Path(tmp)
        try:
            with tarfile.open(fileobj=io.BytesIO(tarball), mode="r:gz") as tar:
                members = [m for m in tar.getmembers() if _is_safe_member(m)]
                tar.extractall(root, members=members, filter="data")
        except (tarfile.TarError, OSError, EOFError) as e:
            raise CorruptTarballError(f"Package tarball could not be extracted: {e}") from e

        package_dir = root / "package"
        if not package_dir.is_dir():
            children = [p for p in root.iterdir() if p.is_dir()]
            package_dir = children[0] if len(children) == 1 else root
        yield package_dir


def check_structure(package_dir: Path) -> List[str]:
    """Return the list of missing required files."""
    errors: List[str] = []
    if not (package_dir / LOCKFILE_NAME).is_file():
        errors.append(f"{LOCKFILE_NAME} is required but not found in the package")
    if not (package_dir / DIST_DIR).is_dir():
        errors.append(f"{DIST_DIR}/ directory is required but not found in the package")
    if not (package_dir / DIST_INDEX).is_file():
        errors.append(f"{DIST_INDEX} is required but not found in the package")
    return errors


def _read_json(path: Path, package_name: str) -> Optional[Dict[str, Any]]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.warning("File not found in package", package=package_name, file=path.name)
        return None
    try:
        parsed = json.loads(content)
    except ValueError:
        logger.warning("Failed to parse JSON file", package=package_name, file=path.name)
        return None
    return parsed if isinstance(parsed, dict) else None


def read_min_api(package_dir: Path, package_name: str) -> Optional[str]:
    """``features.minAPI`` from the packaged manifest, if it is semver."""
    manifest = _read_json(package_dir / "package.json", package_name)
    features = manifest.get("features") if manifest else None
    value = features.get("minAPI") if isinstance(features, dict) else None
    if is_valid_semver(value):
        return value
    logger.warning("features.minAPI missing or invalid; storing null", package=package_name)
    return None


def read_max_api(
    package_dir: Path, package_name: str, compatibility_package: str
) -> Optional[str]:
    """Exact lockfile pin of ``compatibility_package``, if it is semver.

    Reads ``dependencies[<pkg>].version`` (lockfile v1) and falls back to
    ``packages["node_modules/<pkg>"].version`` (lockfile v2/v3).
    """
    lockfile = _read_json(package_dir / LOCKFILE_NAME, package_name)
    value = None
    if lockfile:
        dependencies = lockfile.get("dependencies")
        entry = dependencies.get(compatibility_package) if isinstance(dependencies, dict) else None
        if isinstance(entry, dict):
            value = entry.get("version")
        if value is None:
            packages = lockfile.get("packages")
            entry = (
                packages.get(f"node_modules/{compatibility_package}")
                if isinstance(packages, dict)
                else None
            )
            if isinstance(entry, dict):
                value = entry.get("version")
    if is_valid_semver(value):
        return value
    logger.warning(
        "Compatibility pin missing or invalid; storing null",
        package=package_name,
        dependency=compatibility_package,
    )
    return None


class PackageInspector:
    """Downloads a package's tarball and inspects its contents."""

    def __init__(self, registry: RegistryClient, compatibility_package: str = "@pptb/types"):
        self.registry = registry
        self.compatibility_package = compatibility_package

    async def _download(self, package_name: str) -> bytes:
        # Re-resolved rather than trusting a caller-supplied tarball URL.
        try:
            metadata = await self.registry.fetch_package(package_name)
        except IntakeError as e:
            raise TarballDownloadError(f"Could not resolve tarball: {e.message}") from e
        if not metadata.tarball_url:
            raise TarballDownloadError("Could not find tarball URL")
        return await self.registry.download_tarball(metadata.tarball_url)

    def _read_versions(self, package_dir: Path, package_name: str) -> VersionInfo:
        return VersionInfo(
            min_api=read_min_api(package_dir, package_name),
            max_api=read_max_api(package_dir, package_name, self.compatibility_package),
        )

    async def inspect(self, package_name: str) -> InspectionReport:
        """Check required files and read version markers from one extraction.

        Raises:
            TarballDownloadError: the tarball could not be resolved or fetched
        """
        tarball = await self._download(package_name)
        try:
            with extracted_package(tarball) as package_dir:
                errors = check_structure(package_dir)
                versions = self._read_versions(package_dir, package_name)
        except CorruptTarballError as e:
            return InspectionReport(errors=[str(e)])
        return InspectionReport(errors=errors, versions=versions)

    async def extract_version_info(self, package_name: str) -> VersionInfo:
        """Read only the version markers; every failure degrades to nulls."""
        try:
            tarball = await self._download(package_name)
            with extracted_package(tarball) as package_dir:
                return self._read_versions(package_dir, package_name)
        except Exception as e:
            logger.warning(
                "Version extraction failed; storing nulls", package=package_name, error=str(e)
            )
            return VersionInfo()
