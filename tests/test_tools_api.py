"""
Tests for published-tool endpoints: updates, status changes, categories.
"""

import pytest

from toolbox_intake.db.models import ToolModel, ToolUpdateModel

from conftest import (
    OTHER_ID,
    OTHER_TOKEN,
    USER_EMAIL,
    USER_ID,
    USER_TOKEN,
    auth_headers,
    package_files,
)


@pytest.fixture
def tool(db_session):
    tool = ToolModel(
        package_name="pptb-sample-tool",
        name="Sample Tool",
        version="1.0.0",
        license="MIT",
        user_id=USER_ID,
    )
    db_session.add(tool)
    db_session.commit()
    return tool


@pytest.fixture
def tool_update(db_session, tool):
    record = ToolUpdateModel(tool_id=tool.id, package_name=tool.package_name, submitted_by=USER_ID)
    db_session.add(record)
    db_session.commit()
    return record


def post_update(client, update_id, package_name="pptb-sample-tool", token=USER_TOKEN):
    return client.post(
        "/tools/updates",
        json={"toolUpdateId": update_id, "packageName": package_name},
        headers=auth_headers(token),
    )


class TestToolUpdates:
    def test_valid_update_refreshes_tool(self, client, npm, db_session, tool, tool_update):
        npm.publish(
            "pptb-sample-tool",
            version="1.1.0",
            files=package_files(min_api="1.1.0", max_api="1.3.0"),
            description="Now with solution diffing",
        )

        response = post_update(client, tool_update.id)

        assert response.status_code == 200
        assert response.json()["data"] == {"toolId": tool.id, "version": "1.1.0"}
        db_session.expire_all()
        refreshed = db_session.get(ToolModel, tool.id)
        assert refreshed.version == "1.1.0"
        assert refreshed.description == "Now with solution diffing"
        assert (refreshed.min_api, refreshed.max_api) == ("1.1.0", "1.3.0")
        record = db_session.get(ToolUpdateModel, tool_update.id)
        assert record.status == "validated"
        assert record.version == "1.1.0"
        assert record.validation_result["valid"] is True

    def test_invalid_update_is_recorded_and_notified(
        self, client, npm, db_session, emails, tool, tool_update
    ):
        npm.publish("pptb-sample-tool", version="1.1.0", license="WTFPL")

        response = post_update(client, tool_update.id)

        assert response.status_code == 400
        assert response.json()["error"] == "Package validation failed"
        db_session.expire_all()
        record = db_session.get(ToolUpdateModel, tool_update.id)
        assert record.status == "validation_failed"
        assert record.validation_result["valid"] is False
        assert db_session.get(ToolModel, tool.id).version == "1.0.0"

        (admin_message,) = emails.with_template("tpl-update")
        assert admin_message["to"] == ["admin@example.com", "reviewer@example.com"]
        (developer_message,) = emails.with_template("tpl-update-dev")
        assert developer_message["to"] == [USER_EMAIL]
        assert developer_message["template"]["variables"]["version"] == "1.1.0"

    def test_unknown_update_record(self, client):
        response = post_update(client, "missing")

        assert response.status_code == 404
        assert response.json()["error"] == "Tool update not found"

    def test_package_without_tool(self, client, npm, db_session):
        npm.publish("pptb-unpublished")
        record = ToolUpdateModel(package_name="pptb-unpublished", submitted_by=USER_ID)
        db_session.add(record)
        db_session.commit()

        response = post_update(client, record.id, package_name="pptb-unpublished")

        assert response.status_code == 404
        assert response.json()["step"] == "npm_check"

    def test_package_must_match_update_record(self, client, npm, db_session, tool_update):
        other_tool = ToolModel(
            package_name="pptb-other-tool", name="Other Tool", version="1.0.0", user_id=OTHER_ID
        )
        db_session.add(other_tool)
        db_session.commit()
        npm.publish("pptb-other-tool", version="2.0.0")

        response = post_update(client, tool_update.id, package_name="pptb-other-tool")

        assert response.status_code == 400
        assert "does not match the tool update" in response.json()["error"]
        db_session.expire_all()
        assert db_session.get(ToolModel, other_tool.id).version == "1.0.0"
        assert db_session.get(ToolUpdateModel, tool_update.id).status == "pending"

    def test_update_for_someone_elses_tool_is_forbidden(self, client, npm, db_session, tool):
        record = ToolUpdateModel(tool_id=tool.id, package_name=tool.package_name, submitted_by=USER_ID)
        db_session.add(record)
        db_session.commit()
        npm.publish("pptb-sample-tool", version="2.0.0")

        response = post_update(client, record.id, token=OTHER_TOKEN)

        assert response.status_code == 403
        db_session.expire_all()
        assert db_session.get(ToolModel, tool.id).version == "1.0.0"

    def test_tool_owner_may_process_update_submitted_by_another_user(
        self, client, npm, db_session, tool
    ):
        record = ToolUpdateModel(tool_id=tool.id, package_name=tool.package_name, submitted_by=OTHER_ID)
        db_session.add(record)
        db_session.commit()
        npm.publish("pptb-sample-tool", version="1.2.0")

        response = post_update(client, record.id)

        assert response.status_code == 200
        assert response.json()["data"]["version"] == "1.2.0"

    @pytest.mark.parametrize("status", ["validated", "validation_failed"])
    def test_processed_update_is_not_replayed(self, client, npm, db_session, tool_update, status):
        tool_update.status = status
        db_session.commit()
        npm.publish("pptb-sample-tool", version="1.5.0")

        response = post_update(client, tool_update.id)

        assert response.status_code == 400
        assert response.json()["error"] == (
            f'Tool update has already been processed (status "{status}")'
        )

    def test_requires_sign_in(self, client, tool_update):
        response = client.post(
            "/tools/updates",
            json={"toolUpdateId": tool_update.id, "packageName": "pptb-sample-tool"},
        )

        assert response.status_code == 401


class TestToolStatus:
    def test_owner_changes_status(self, client, tool):
        response = client.post(
            "/tools/status",
            json={"toolId": tool.id, "status": "deprecated"},
            headers=auth_headers(USER_TOKEN),
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Tool status updated to deprecated"
        assert response.json()["data"] == {"toolId": tool.id, "status": "deprecated"}

    def test_other_user_forbidden(self, client, tool):
        response = client.post(
            "/tools/status",
            json={"toolId": tool.id, "status": "deleted"},
            headers=auth_headers(OTHER_TOKEN),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "You do not have permission to update this tool"

    def test_unknown_tool(self, client):
        response = client.post(
            "/tools/status",
            json={"toolId": "missing", "status": "active"},
            headers=auth_headers(USER_TOKEN),
        )

        assert response.status_code == 404

    def test_invalid_status(self, client, tool):
        response = client.post(
            "/tools/status",
            json={"toolId": tool.id, "status": "archived"},
            headers=auth_headers(USER_TOKEN),
        )

        assert response.status_code == 422

    def test_requires_sign_in(self, client, tool):
        response = client.post("/tools/status", json={"toolId": tool.id, "status": "active"})

        assert response.status_code == 401


def test_list_categories(client):
    response = client.get("/categories")

    assert response.status_code == 200
    names = [c["name"] for c in response.json()["data"]]
    assert sorted(names) == ["Administration", "Data", "Development", "Security"]
