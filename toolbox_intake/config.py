"""
Configuration management for the Tool Intake service.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Power Platform ToolBox Intake"
    debug: bool = False
    environment: str = "development"
    site_url: str = "https://www.powerplatformtoolbox.com"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 1

    # Database
    database_url: str = "sqlite:///./toolbox_intake.db"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Outbound HTTP
    http_timeout_seconds: float = 30.0
    reachability_timeout_seconds: float = 10.0

    # npm registry
    npm_registry_url: str = "https://registry.npmjs.org"
    compatibility_package: str = Field(
        default="@pptb/types",
        description="Dependency whose pinned lockfile version is recorded as max_api.",
    )

    # Supabase auth (bearer token -> user)
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None

    # GitHub Actions
    github_token: Optional[str] = Field(default=None, validation_alias="GH_PAT_TOKEN")
    github_owner: str = "PowerPlatformToolBox"
    github_repo: str = "pptb-web"
    github_ref: str = "main"
    github_api_url: str = "https://api.github.com"
    convert_workflow_file: str = "convert-tool.yml"
    workflow_timeout_seconds: float = 180.0
    workflow_poll_interval_seconds: float = 30.0

    # Conversion jobs
    conversion_run_inline: bool = True
    worker_poll_interval: int = 5
    conversion_stale_grace_seconds: float = Field(
        default=120.0,
        description="Extra time past the workflow timeout before a running job counts as abandoned.",
    )

    # Email (Resend)
    resend_api_key: Optional[str] = None
    resend_api_url: str = "https://api.resend.com"
    resend_from_email: Optional[str] = None
    resend_admin_recipients: str = Field(
        default="",
        description="Comma-separated admin recipient list for intake notifications.",
    )
    resend_tool_submission_template_id: Optional[str] = None
    resend_tool_update_template_id: Optional[str] = None
    resend_tool_update_dev_template_id: Optional[str] = None
    resend_tool_review_changes_template_id: Optional[str] = None
    resend_tool_published_template_id: Optional[str] = None

    def admin_recipients(self) -> List[str]:
        """Parse the comma-separated admin recipient list."""
        if not self.resend_admin_recipients or not self.resend_admin_recipients.strip():
            return []
        recipients = [r.strip() for r in self.resend_admin_recipients.split(",")]
        return [r for r in recipients if r]

    def conversion_stale_after_seconds(self) -> float:
        """Age at which a running conversion job is treated as abandoned."""
        return self.workflow_timeout_seconds + self.conversion_stale_grace_seconds


def get_settings() -> Settings:
    """Build application settings from the environment."""
    return Settings()
