"""
Application context: every collaborator the pipeline talks to, built once.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from .auth import AuthClient
from .ci.github import WorkflowBridge
from .config import Settings, get_settings
from .db.base import create_db_engine, make_session_factory
from .notifications.email import EmailNotifier
from .registry.client import RegistryClient
from .registry.inspector import PackageInspector
from .validation.reachability import UrlProbe
from .validation.validator import PackageValidator


@dataclass
class AppContext:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    registry: RegistryClient
    probe: UrlProbe
    workflows: WorkflowBridge
    notifier: EmailNotifier
    auth: AuthClient

    def session(self) -> Session:
        return self.session_factory()

    @property
    def inspector(self) -> PackageInspector:
        return PackageInspector(self.registry, self.settings.compatibility_package)

    @property
    def validator(self) -> PackageValidator:
        return PackageValidator(self.probe)

    async def aclose(self) -> None:
        """Close every outbound HTTP client."""
        await self.registry.close()
        await self.probe.close()
        await self.workflows.close()
        await self.notifier.close()
        await self.auth.close()


def build_context(
    settings: Optional[Settings] = None, engine: Optional[Engine] = None
) -> AppContext:
    """Build the default context from settings."""
    settings = settings or get_settings()
    engine = engine or create_db_engine(settings.database_url)
    timeout = settings.http_timeout_seconds
    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=make_session_factory(engine),
        registry=RegistryClient(settings.npm_registry_url, timeout=timeout),
        probe=UrlProbe(timeout=settings.reachability_timeout_seconds),
        workflows=WorkflowBridge(
            token=settings.github_token,
            owner=settings.github_owner,
            repo=settings.github_repo,
            ref=settings.github_ref,
            api_url=settings.github_api_url,
            timeout=timeout,
        ),
        notifier=EmailNotifier.from_settings(settings),
        auth=AuthClient(settings.supabase_url, settings.supabase_anon_key, timeout=timeout),
    )
