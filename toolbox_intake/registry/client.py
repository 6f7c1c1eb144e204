"""
npm registry client.

Resolves a package name to the metadata of its ``latest`` dist-tag and
downloads tarballs. Pure reads; nothing is retried here.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
import structlog

from ..errors import (
    PackageNotFoundError,
    RegistryShapeError,
    TarballDownloadError,
    TransientFetchError,
)
from ..schemas.package import PackageMetadata

logger = structlog.get_logger()

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"


def encode_package_name(package_name: str) -> str:
    """Encode a (possibly scoped) name for a registry URL: ``@scope%2Fname``."""
    return quote(package_name, safe="@")


class RegistryClient:
    """Async client for the npm registry."""

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json"},
            follow_redirects=True,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def get_package_document(self, package_name: str) -> Dict[str, Any]:
        """Fetch the full package document (all versions and dist-tags).

        The base document is used instead of ``/<name>/latest`` because it
        is more reliable for packages that also publish pre-releases.
        """
        url = f"{self.base_url}/{encode_package_name(package_name)}"
        try:
            response = await self.client.get(url)
        except httpx.RequestError as e:
            logger.error("npm registry request failed", package=package_name, error=str(e))
            raise TransientFetchError(
                f"Failed to reach the npm registry: {e}", step="npm_check"
            ) from e

        if response.status_code == 404:
            raise PackageNotFoundError(package_name)
        if response.status_code >= 400:
            raise TransientFetchError(
                f"Failed to fetch package: HTTP {response.status_code}", step="npm_check"
            )

        try:
            document = response.json()
        except ValueError as e:
            raise RegistryShapeError(
                f'Registry returned an unreadable document for "{package_name}"'
            ) from e
        if not isinstance(document, dict):
            raise RegistryShapeError(
                f'Registry returned an unreadable document for "{package_name}"'
            )
        return document

    async def fetch_package(self, package_name: str) -> PackageMetadata:
        """Resolve ``package_name`` to the metadata of its latest version."""
        document = await self.get_package_document(package_name)

        dist_tags = document.get("dist-tags")
        latest = dist_tags.get("latest") if isinstance(dist_tags, dict) else None
        if not latest:
            raise RegistryShapeError(f'Package "{package_name}" has no latest version')

        versions = document.get("versions")
        version_document = versions.get(latest) if isinstance(versions, dict) else None
        if not isinstance(version_document, dict):
            raise RegistryShapeError(f"Could not find version data for {latest}")

        metadata = PackageMetadata.from_version_document(version_document)
        logger.debug(
            "Resolved npm package",
            package=package_name,
            version=metadata.version,
            tarball=metadata.tarball_url,
        )
        return metadata

    async def download_tarball(self, tarball_url: str) -> bytes:
        """Download a package tarball."""
        try:
            response = await self.client.get(
                tarball_url, headers={"Accept": "application/octet-stream"}
            )
        except httpx.RequestError as e:
            raise TarballDownloadError(f"Failed to download tarball: {e}") from e

        if response.status_code >= 400:
            raise TarballDownloadError(
                f"Failed to download tarball: HTTP {response.status_code}"
            )
        return response.content
