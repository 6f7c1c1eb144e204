"""Test configuration and fixtures.

Every outbound collaborator is faked at the HTTP layer with
``httpx.MockTransport`` (npm, Resend, Supabase Auth) or replaced by a small
in-process double (URL probe, build workflow). The database is in-memory
SQLite on a StaticPool so the app and the test share one connection.
"""

import io
import json
import logging
import sys
import tarfile
from typing import Any, Callable, Dict, Optional
from urllib.parse import unquote

import httpx
import pytest
import structlog
from fastapi.testclient import TestClient

from toolbox_intake.api import create_app
from toolbox_intake.auth import AuthClient
from toolbox_intake.config import Settings
from toolbox_intake.context import AppContext
from toolbox_intake.db.base import create_db_engine, init_database, make_session_factory
from toolbox_intake.db.models import (
    CategoryModel,
    ToolModel,
    UserProfileModel,
    UserRoleModel,
)
from toolbox_intake.notifications.email import EmailNotifier
from toolbox_intake.registry.client import RegistryClient

REGISTRY_URL = "https://registry.test"
AUTH_URL = "https://auth.test"

ADMIN_TOKEN = "admin-token"
USER_TOKEN = "user-token"
OTHER_TOKEN = "other-token"
ADMIN_ID = "00000000-0000-0000-0000-0000000000a1"
USER_ID = "00000000-0000-0000-0000-0000000000b1"
OTHER_ID = "00000000-0000-0000-0000-0000000000c1"
ADMIN_EMAIL = "admin@example.com"
USER_EMAIL = "dev@example.com"

USERS = {
    ADMIN_TOKEN: {"id": ADMIN_ID, "email": ADMIN_EMAIL},
    USER_TOKEN: {"id": USER_ID, "email": USER_EMAIL},
    OTHER_TOKEN: {"id": OTHER_ID, "email": "other@example.com"},
}

CATEGORIES = {1: "Data", 2: "Development", 3: "Security", 4: "Administration"}


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def build_tarball(files: Dict[str, Any], root: str = "package") -> bytes:
    """Gzipped tar with every file nested under ``root/``."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for path, content in files.items():
            data = content if isinstance(content, bytes) else content.encode("utf-8")
            info = tarfile.TarInfo(name=f"{root}/{path}" if root else path)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def package_files(
    min_api: Optional[str] = "1.0.0",
    max_api: Optional[str] = "1.2.0",
    lockfile: bool = True,
    index_html: bool = True,
) -> Dict[str, str]:
    files: Dict[str, str] = {
        "package.json": json.dumps({"name": "sample", "features": {"minAPI": min_api}}),
    }
    if lockfile:
        files["npm-shrinkwrap.json"] = json.dumps(
            {"lockfileVersion": 1, "dependencies": {"@pptb/types": {"version": max_api}}}
        )
    if index_html:
        files["dist/index.html"] = "<!doctype html><html></html>"
    else:
        files["dist/app.js"] = "console.log('tool')"
    return files


def version_document(name: str, version: str = "1.0.0", **overrides: Any) -> Dict[str, Any]:
    """A ``versions.<ver>`` registry entry that passes every validation rule."""
    document = {
        "name": name,
        "version": version,
        "displayName": "Sample Tool",
        "description": "Inspects Dataverse solutions",
        "license": "MIT",
        "contributors": [{"name": "Ada Lovelace", "url": "https://github.com/ada"}],
        "icon": {"dark": "icons/dark.svg", "light": "icons/light.svg"},
        "configurations": {
            "repository": "https://github.com/example/sample-tool",
            "website": "https://sample-tool.example.com",
            "readmeUrl": "https://raw.githubusercontent.com/example/sample-tool/main/README.md",
        },
        "cspExceptions": {"connect-src": ["https://api.example.com"]},
        "features": {"multiConnection": "optional"},
        "dist": {"tarball": f"{REGISTRY_URL}/tarballs/{name.replace('/', '-')}-{version}.tgz"},
    }
    document.update(overrides)
    return document


class FakeNpm:
    """In-memory npm registry served through a MockTransport."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.tarballs: Dict[str, bytes] = {}

    def publish(
        self,
        name: str,
        version: str = "1.0.0",
        files: Optional[Dict[str, Any]] = None,
        tarball: Optional[bytes] = None,
        **overrides: Any,
    ) -> Dict[str, Any]:
        document = version_document(name, version, **overrides)
        self.documents[name] = {
            "name": name,
            "dist-tags": {"latest": version},
            "versions": {version: document},
        }
        tarball_url = document["dist"]["tarball"]
        self.tarballs[tarball_url] = tarball if tarball is not None else build_tarball(
            files if files is not None else package_files()
        )
        return document

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url in self.tarballs:
            return httpx.Response(200, content=self.tarballs[url])
        if request.url.path.startswith("/tarballs/"):
            return httpx.Response(404)
        name = unquote(request.url.raw_path.decode("ascii").split("?")[0].lstrip("/"))
        document = self.documents.get(name)
        if document is None:
            return httpx.Response(404, json={"error": "Not found"})
        return httpx.Response(200, json=document)


class FakeProbe:
    """Reachability double: everything is reachable unless listed."""

    def __init__(self):
        self.unreachable = set()
        self.calls = []

    async def is_reachable(self, url: str) -> bool:
        self.calls.append(url)
        return url not in self.unreachable

    async def close(self) -> None:
        pass


class FakeWorkflows:
    """Build workflow double; on success it upserts the tool like the real build."""

    def __init__(self, session_factory: Callable):
        self.session_factory = session_factory
        self.token: Optional[str] = "ghp_test"
        self.conclusion: Optional[str] = "success"
        self.create_tool = True
        self.error: Optional[Exception] = None
        self.calls = []

    async def run_workflow(self, workflow_file, inputs, ref=None, timeout_seconds=180.0,
                           poll_interval_seconds=30.0):
        self.calls.append({"workflow": workflow_file, "inputs": inputs})
        if self.error is not None:
            raise self.error
        if self.conclusion == "success" and self.create_tool:
            db = self.session_factory()
            try:
                tool = db.query(ToolModel).filter(ToolModel.package_name == inputs["tool_id"]).first()
                if tool is None:
                    tool = ToolModel(package_name=inputs["tool_id"], name="Sample Tool")
                    db.add(tool)
                tool.version = inputs["version"]
                tool.user_id = inputs["submitted_by"] or None
                db.commit()
            finally:
                db.close()
        return self.conclusion

    async def close(self) -> None:
        pass


class ResendRecorder:
    """Records Resend ``/emails`` payloads."""

    def __init__(self):
        self.sent = []
        self.status_code = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.sent.append(json.loads(request.content))
        return httpx.Response(self.status_code, json={"id": f"email-{len(self.sent)}"})

    def with_template(self, template_id: str):
        return [m for m in self.sent if m["template"]["id"] == template_id]


def supabase_auth_handler(request: httpx.Request) -> httpx.Response:
    header = request.headers.get("authorization", "")
    token = header[len("Bearer "):] if header.startswith("Bearer ") else ""
    user = USERS.get(token)
    if user is None:
        return httpx.Response(401, json={"msg": "invalid JWT"})
    return httpx.Response(200, json=user)


def seed_reference_data(session_factory) -> None:
    db = session_factory()
    try:
        for category_id, name in CATEGORIES.items():
            db.add(CategoryModel(id=category_id, name=name))
        db.add(UserRoleModel(user_id=ADMIN_ID, role="admin"))
        db.add(UserProfileModel(id=ADMIN_ID, email=ADMIN_EMAIL, name="Admin"))
        db.add(UserProfileModel(id=USER_ID, email=USER_EMAIL, name="Developer"))
        db.commit()
    finally:
        db.close()


@pytest.fixture(autouse=True)
def _isolate_logging():
    """Undo ``configure_logging`` calls made under CliRunner's temporary stderr."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    for name, module in list(sys.modules.items()):
        if name.startswith("toolbox_intake"):
            for value in vars(module).values():
                if isinstance(value, structlog._config.BoundLoggerLazyProxy):
                    value.__dict__.pop("bind", None)
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        npm_registry_url=REGISTRY_URL,
        supabase_url=AUTH_URL,
        supabase_anon_key="anon-key",
        github_token="ghp_test",
        workflow_poll_interval_seconds=0,
        conversion_run_inline=True,
        site_url="https://tools.example.com",
        resend_api_key="re_test",
        resend_from_email="noreply@example.com",
        resend_admin_recipients="admin@example.com, reviewer@example.com",
        resend_tool_submission_template_id="tpl-submission",
        resend_tool_update_template_id="tpl-update",
        resend_tool_update_dev_template_id="tpl-update-dev",
        resend_tool_review_changes_template_id="tpl-review-changes",
        resend_tool_published_template_id="tpl-published",
    )


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = make_session_factory(engine)
    seed_reference_data(factory)
    return factory


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def npm() -> FakeNpm:
    return FakeNpm()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def workflows(session_factory) -> FakeWorkflows:
    return FakeWorkflows(session_factory)


@pytest.fixture
def emails() -> ResendRecorder:
    return ResendRecorder()


@pytest.fixture
def context(settings, engine, session_factory, npm, probe, workflows, emails) -> AppContext:
    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        registry=RegistryClient(REGISTRY_URL, transport=httpx.MockTransport(npm.handler)),
        probe=probe,
        workflows=workflows,
        notifier=EmailNotifier.from_settings(
            settings, transport=httpx.MockTransport(emails.handler)
        ),
        auth=AuthClient(
            settings.supabase_url,
            settings.supabase_anon_key,
            transport=httpx.MockTransport(supabase_auth_handler),
        ),
    )


@pytest.fixture
def client(context):
    with TestClient(create_app(context)) as test_client:
        yield test_client


@pytest.fixture
def submit(client, npm):
    """Publish ``name`` on the fake registry and submit it as the test user."""

    def _submit(name: str = "pptb-sample-tool", category_ids=(1, 2), token: Optional[str] = USER_TOKEN, **overrides):
        if name not in npm.documents:
            npm.publish(name, **overrides)
        headers = auth_headers(token) if token else {}
        return client.post(
            "/submit-tool",
            json={"packageName": name, "categoryIds": list(category_ids)},
            headers=headers,
        )

    return _submit


@pytest.fixture
def approved_intake(submit, client):
    """An intake that has passed review."""
    response = submit()
    assert response.status_code == 200, response.text
    intake_id = response.json()["data"]["id"]
    review = client.post(
        "/admin/tool-intakes",
        json={"intakeId": intake_id, "action": "approve"},
        headers=auth_headers(ADMIN_TOKEN),
    )
    assert review.status_code == 200, review.text
    return intake_id
