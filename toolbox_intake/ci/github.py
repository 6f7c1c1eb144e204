"""
GitHub Actions bridge.

Dispatches a ``workflow_dispatch`` workflow with string inputs and polls the
workflow's run listing until the run created after the dispatch reaches a
terminal status, or the timeout elapses. Nothing here retries a dispatch.

Runs are matched by workflow, branch and ``created_at >= dispatched_at``;
an unrelated dispatch of the same workflow on the same ref inside that
window can be mistaken for ours.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import structlog

from ..errors import ConfigurationError, WorkflowDispatchError, WorkflowTimeoutError

logger = structlog.get_logger()

DEFAULT_API_URL = "https://api.github.com"
RUNS_PAGE_SIZE = 10
SUCCESS = "success"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class WorkflowBridge:
    """Client for dispatching and watching GitHub Actions workflows."""

    def __init__(
        self,
        token: Optional[str],
        owner: str,
        repo: str,
        ref: str = "main",
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.token = token
        self.owner = owner
        self.repo = repo
        self.ref = ref
        self.api_url = api_url.rstrip("/")
        self._sleep = sleep
        self._clock = clock
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.AsyncClient(timeout=timeout, headers=headers, transport=transport)

    async def close(self) -> None:
        await self.client.aclose()

    def _workflow_url(self, workflow_file: str) -> str:
        return (
            f"{self.api_url}/repos/{self.owner}/{self.repo}"
            f"/actions/workflows/{workflow_file}"
        )

    def _require_token(self) -> None:
        if not self.token:
            raise ConfigurationError("GitHub token not configured")

    async def dispatch(
        self, workflow_file: str, inputs: Dict[str, str], ref: Optional[str] = None
    ) -> datetime:
        """Dispatch ``workflow_file``; returns the dispatch time (whole seconds, UTC)."""
        self._require_token()
        ref = ref or self.ref
        # Run timestamps have second precision.
        dispatched_at = datetime.now(timezone.utc).replace(microsecond=0)
        try:
            response = await self.client.post(
                f"{self._workflow_url(workflow_file)}/dispatches",
                json={"ref": ref, "inputs": inputs},
            )
        except httpx.RequestError as e:
            raise WorkflowDispatchError(f"Workflow dispatch failed: {e}") from e

        if response.status_code >= 400:
            raise WorkflowDispatchError(
                f"Workflow dispatch failed: {response.status_code} {response.text}"
            )
        logger.info(
            "Workflow dispatched",
            workflow=workflow_file,
            ref=ref,
            tool_id=inputs.get("tool_id"),
        )
        return dispatched_at

    async def list_runs(self, workflow_file: str, ref: str) -> List[Dict[str, Any]]:
        """Most recent runs of ``workflow_file`` on ``ref``; [] if the listing fails."""
        try:
            response = await self.client.get(
                f"{self._workflow_url(workflow_file)}/runs",
                params={"branch": ref, "event": "workflow_dispatch", "per_page": RUNS_PAGE_SIZE},
            )
        except httpx.RequestError as e:
            logger.warning("Workflow run listing failed", workflow=workflow_file, error=str(e))
            return []
        if response.status_code >= 400:
            logger.warning(
                "Workflow run listing failed",
                workflow=workflow_file,
                status=response.status_code,
            )
            return []
        try:
            runs = response.json().get("workflow_runs")
        except (ValueError, AttributeError):
            return []
        return runs if isinstance(runs, list) else []

    @staticmethod
    def match_run(runs: List[Dict[str, Any]], dispatched_at: datetime) -> Optional[Dict[str, Any]]:
        """Oldest run created at or after ``dispatched_at``."""
        candidates = []
        for run in runs:
            if not isinstance(run, dict):
                continue
            created = _parse_timestamp(run.get("created_at"))
            if created is not None and created >= dispatched_at:
                candidates.append((created, run))
        if not candidates:
            return None
        candidates.sort(key=lambda pair: pair[0])
        return candidates[0][1]

    async def wait_for_completion(
        self,
        workflow_file: str,
        dispatched_at: datetime,
        ref: Optional[str] = None,
        timeout_seconds: float = 180.0,
        poll_interval_seconds: float = 30.0,
    ) -> Optional[str]:
        """Poll until the dispatched run completes and return its conclusion.

        Raises:
            WorkflowTimeoutError: no completed run within ``timeout_seconds``
        """
        ref = ref or self.ref
        deadline = self._clock() + timeout_seconds
        run_id = None

        while self._clock() < deadline:
            run = self.match_run(await self.list_runs(workflow_file, ref), dispatched_at)
            if run is not None:
                if run_id is None:
                    run_id = run.get("id")
                    logger.info("Workflow run found", workflow=workflow_file, run_id=run_id)
                if run.get("status") == "completed":
                    conclusion = run.get("conclusion")
                    logger.info(
                        "Workflow run completed",
                        workflow=workflow_file,
                        run_id=run.get("id"),
                        conclusion=conclusion,
                    )
                    return conclusion
            await self._sleep(poll_interval_seconds)

        logger.warning("Workflow run timed out", workflow=workflow_file, run_id=run_id)
        raise WorkflowTimeoutError(timeout_seconds)

    async def run_workflow(
        self,
        workflow_file: str,
        inputs: Dict[str, str],
        ref: Optional[str] = None,
        timeout_seconds: float = 180.0,
        poll_interval_seconds: float = 30.0,
    ) -> Optional[str]:
        """Dispatch and wait; returns the terminal conclusion string."""
        dispatched_at = await self.dispatch(workflow_file, inputs, ref=ref)
        return await self.wait_for_completion(
            workflow_file,
            dispatched_at,
            ref=ref,
            timeout_seconds=timeout_seconds,
            poll_interval_seconds=poll_interval_seconds,
        )
