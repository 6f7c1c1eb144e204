"""
Bearer-token authentication against Supabase Auth.

A token is resolved to a user by ``GET /auth/v1/user``; the admin role is
a ``user_roles`` row with ``role = 'admin'``.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from sqlalchemy.orm import Session

from .db.models import UserProfileModel, UserRoleModel
from .errors import ConfigurationError, UpstreamError

logger = structlog.get_logger()

ADMIN_ROLE = "admin"


@dataclass
class AuthenticatedUser:
    id: str
    email: Optional[str] = None


def parse_bearer(header: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class AuthClient:
    """Resolves access tokens to users."""

    def __init__(
        self,
        supabase_url: Optional[str],
        anon_key: Optional[str],
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.supabase_url = supabase_url.rstrip("/") if supabase_url else None
        self.anon_key = anon_key
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self.client.aclose()

    async def get_user(self, token: str) -> Optional[AuthenticatedUser]:
        """Return the token's user, or None if the token is not valid."""
        if not self.supabase_url or not self.anon_key:
            raise ConfigurationError("Authentication service not configured")

        try:
            response = await self.client.get(
                f"{self.supabase_url}/auth/v1/user",
                headers={"apikey": self.anon_key, "Authorization": f"Bearer {token}"},
            )
        except httpx.RequestError as e:
            logger.error("Auth service request failed", error=str(e))
            raise UpstreamError("Authentication service unavailable") from e

        if response.status_code in (401, 403, 404):
            return None
        if response.status_code >= 400:
            raise UpstreamError(f"Authentication service returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            return None
        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            return None
        return AuthenticatedUser(id=user_id, email=data.get("email"))


def is_admin(db: Session, user_id: str) -> bool:
    return (
        db.query(UserRoleModel)
        .filter(UserRoleModel.user_id == user_id, UserRoleModel.role == ADMIN_ROLE)
        .first()
        is not None
    )


def get_user_email(db: Session, user_id: Optional[str]) -> Optional[str]:
    """Profile email for ``user_id``, if it looks like an address."""
    if not user_id:
        return None
    profile = db.get(UserProfileModel, user_id)
    email = profile.email if profile else None
    return email if isinstance(email, str) and "@" in email else None
