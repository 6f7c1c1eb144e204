"""
Transactional email through the Resend REST API.

Every send is best-effort: missing configuration or provider failures are
logged and reported in the returned ``EmailResult``, never raised.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import Settings

logger = structlog.get_logger()


@dataclass
class EmailResult:
    success: bool
    error: Optional[str] = None


class EmailNotifier:
    """Template-based notifications for intake events."""

    def __init__(
        self,
        api_key: Optional[str],
        from_email: Optional[str],
        admin_recipients: Optional[List[str]] = None,
        templates: Optional[Dict[str, Optional[str]]] = None,
        api_url: str = "https://api.resend.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.admin_recipients = list(admin_recipients or [])
        self.templates = dict(templates or {})
        self.api_url = api_url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "EmailNotifier":
        return cls(
            api_key=settings.resend_api_key,
            from_email=settings.resend_from_email,
            admin_recipients=settings.admin_recipients(),
            templates={
                "tool_submission": settings.resend_tool_submission_template_id,
                "tool_update": settings.resend_tool_update_template_id,
                "tool_update_dev": settings.resend_tool_update_dev_template_id,
                "tool_review_changes": settings.resend_tool_review_changes_template_id,
                "tool_published": settings.resend_tool_published_template_id,
            },
            api_url=settings.resend_api_url,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def _deliver(
        self,
        template: str,
        subject: str,
        variables: Dict[str, Any],
        to: Optional[List[str]] = None,
    ) -> EmailResult:
        template_id = self.templates.get(template)
        if not template_id:
            logger.warning("Email template not configured; skipping", template=template)
            return EmailResult(False, f"Template {template} not configured")
        if not self.api_key:
            logger.warning("Resend API key not configured; skipping", template=template)
            return EmailResult(False, "Resend API key not configured")
        if not self.from_email:
            logger.warning("Sender address not configured; skipping", template=template)
            return EmailResult(False, "RESEND_FROM_EMAIL is not configured")

        recipients = to if to else self.admin_recipients
        if not recipients:
            logger.warning("No email recipients; skipping", template=template)
            return EmailResult(False, "No recipients configured")

        payload = {
            "from": self.from_email,
            "to": recipients,
            "subject": subject,
            "template": {"id": template_id, "variables": variables},
        }
        try:
            response = await self.client.post(
                f"{self.api_url}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.RequestError as e:
            logger.error("Email send failed", template=template, error=str(e))
            return EmailResult(False, str(e))

        if response.status_code >= 400:
            message = f"Email provider returned HTTP {response.status_code}"
            logger.error("Email send failed", template=template, status=response.status_code)
            return EmailResult(False, message)

        logger.info("Email sent", template=template, recipients=len(recipients))
        return EmailResult(True)

    async def send_tool_submission(
        self, tool_name: str, description: str, submission_date: str
    ) -> EmailResult:
        """Tell the admins a new intake is waiting for review."""
        return await self._deliver(
            "tool_submission",
            f"New Tool Intake: {tool_name}",
            {
                "toolName": tool_name,
                "description": description,
                "submissionDate": submission_date,
            },
        )

    async def send_tool_update_admin(
        self, tool_name: str, version: str, validation_errors: List[str]
    ) -> EmailResult:
        return await self._deliver(
            "tool_update",
            f"Tool Update Validation Failed: {tool_name}@{version}",
            {"toolName": tool_name, "version": version, "validationErrors": validation_errors},
        )

    async def send_tool_update_developer(
        self,
        recipient: Optional[str],
        tool_name: str,
        version: str,
        validation_errors: List[str],
    ) -> EmailResult:
        if not recipient:
            logger.warning("Developer email not found", tool=tool_name)
            return EmailResult(False, "Developer email not found")
        return await self._deliver(
            "tool_update_dev",
            f"Action needed: {tool_name} update failed validation",
            {"toolName": tool_name, "version": version, "validationErrors": validation_errors},
            to=[recipient],
        )

    async def send_review_changes(
        self,
        recipient: Optional[str],
        tool_name: str,
        submitted_on: str,
        review_comments: str,
    ) -> EmailResult:
        """Ask the submitter for changes, quoting the reviewer."""
        if not recipient:
            logger.warning("Submitter email not found", tool=tool_name)
            return EmailResult(False, "Submitter email not found")
        return await self._deliver(
            "tool_review_changes",
            f"Changes requested: {tool_name}",
            {
                "toolName": tool_name,
                "submittedOn": submitted_on,
                "reviewComments": review_comments,
            },
            to=[recipient],
        )

    async def send_tool_published(
        self, recipient: Optional[str], tool_name: str, tool_url: str
    ) -> EmailResult:
        if not recipient:
            logger.warning("Submitter email not found", tool=tool_name)
            return EmailResult(False, "Submitter email not found")
        return await self._deliver(
            "tool_published",
            f'Your tool "{tool_name}" is now live!',
            {"toolName": tool_name, "toolUrl": tool_url},
            to=[recipient],
        )
