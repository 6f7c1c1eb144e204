"""
Tests for the admin review endpoints.

Verifies:
- Only admins may list, review or read history
- Review actions move pending intakes and stamp the reviewer
- needs_changes emails the submitter; approve and reject do not
- Reviews from a terminal status are rejected with 400
"""

import pytest

from conftest import ADMIN_ID, ADMIN_TOKEN, OTHER_TOKEN, USER_EMAIL, USER_TOKEN, auth_headers


@pytest.fixture
def intake_id(submit):
    response = submit()
    assert response.status_code == 200, response.text
    return response.json()["data"]["id"]


def review(client, intake_id, action, notes=None, token=ADMIN_TOKEN):
    body = {"intakeId": intake_id, "action": action}
    if notes is not None:
        body["reviewerNotes"] = notes
    return client.post("/admin/tool-intakes", json=body, headers=auth_headers(token))


class TestAdminAccess:
    def test_requires_sign_in(self, client, intake_id):
        response = client.post(
            "/admin/tool-intakes", json={"intakeId": intake_id, "action": "approve"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized. Please sign in."

    def test_requires_admin_role(self, client, intake_id):
        response = review(client, intake_id, "approve", token=USER_TOKEN)

        assert response.status_code == 403
        assert response.json()["error"] == "Unauthorized. Admin access required."

    def test_listing_requires_admin(self, client):
        response = client.get("/admin/tool-intakes", headers=auth_headers(OTHER_TOKEN))

        assert response.status_code == 403


class TestReviewActions:
    def test_approve(self, client, intake_id, emails):
        response = review(client, intake_id, "approve", notes="Looks good")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Tool intake approved successfully"
        assert body["data"]["status"] == "approved"
        assert body["data"]["reviewed_by"] == ADMIN_ID
        assert body["data"]["reviewer_notes"] == "Looks good"
        assert body["data"]["reviewed_at"] is not None
        assert body["outcome"] == {"steps": []}
        assert emails.with_template("tpl-review-changes") == []

    def test_reject(self, client, intake_id, emails):
        response = review(client, intake_id, "reject", notes="Duplicate of an existing tool")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "rejected"
        assert emails.with_template("tpl-review-changes") == []

    def test_needs_changes_emails_submitter(self, client, intake_id, emails):
        response = review(client, intake_id, "needs_changes", notes="Please add a README")

        assert response.status_code == 200
        assert response.json()["message"] == "Tool intake needs_changes successfully"
        assert response.json()["outcome"]["steps"] == [
            {"name": "notify_submitter", "ok": True, "error": None}
        ]
        (message,) = emails.with_template("tpl-review-changes")
        assert message["to"] == [USER_EMAIL]
        variables = message["template"]["variables"]
        assert variables["toolName"] == "Sample Tool"
        assert variables["reviewComments"] == "Please add a README"
        assert variables["submittedOn"]

    def test_needs_changes_without_submitter_email(self, client, submit, emails):
        intake = submit(token=None).json()["data"]["id"]

        response = review(client, intake, "needs_changes", notes="Fix icons")

        assert response.status_code == 200
        assert response.json()["outcome"]["steps"] == [
            {"name": "notify_submitter", "ok": False, "error": "Submitter email not found"}
        ]
        assert emails.with_template("tpl-review-changes") == []

    def test_needs_changes_can_be_approved_later(self, client, intake_id):
        review(client, intake_id, "needs_changes", notes="Fix icons")

        response = review(client, intake_id, "approve")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "approved"

    def test_terminal_status_rejected(self, client, intake_id):
        review(client, intake_id, "reject")

        response = review(client, intake_id, "approve")

        assert response.status_code == 400
        assert response.json()["error"].startswith(
            'Cannot approve intake with status "rejected".'
        )

    def test_unknown_intake(self, client):
        response = review(client, "does-not-exist", "approve")

        assert response.status_code == 404
        assert response.json()["error"] == "Tool intake not found"

    def test_unknown_action(self, client, intake_id):
        response = review(client, intake_id, "publish")

        assert response.status_code == 422


class TestListAndHistory:
    def test_list_filters_by_status(self, client, submit):
        first = submit("pptb-one").json()["data"]["id"]
        submit("pptb-two")
        review(client, first, "approve")

        pending = client.get(
            "/admin/tool-intakes", params={"status": "pending_review"},
            headers=auth_headers(ADMIN_TOKEN),
        )
        everything = client.get("/admin/tool-intakes", headers=auth_headers(ADMIN_TOKEN))

        assert pending.status_code == 200
        assert [i["package_name"] for i in pending.json()["data"]] == ["pptb-two"]
        assert {i["package_name"] for i in everything.json()["data"]} == {"pptb-one", "pptb-two"}

    def test_status_all_lists_everything(self, client, submit):
        first = submit("pptb-one").json()["data"]["id"]
        submit("pptb-two")
        review(client, first, "reject")

        response = client.get(
            "/admin/tool-intakes", params={"status": "all"}, headers=auth_headers(ADMIN_TOKEN)
        )

        assert response.status_code == 200
        assert {i["status"] for i in response.json()["data"]} == {"rejected", "pending_review"}

    def test_list_flattens_relations(self, client, intake_id):
        response = client.get("/admin/tool-intakes", headers=auth_headers(ADMIN_TOKEN))

        (intake,) = response.json()["data"]
        assert sorted(c["name"] for c in intake["categories"]) == ["Data", "Development"]
        assert intake["contributors"][0]["name"] == "Ada Lovelace"

    def test_invalid_status_filter(self, client):
        response = client.get(
            "/admin/tool-intakes", params={"status": "live"}, headers=auth_headers(ADMIN_TOKEN)
        )

        assert response.status_code == 422

    def test_history(self, client, intake_id):
        review(client, intake_id, "approve", notes="ok")

        response = client.get(
            f"/admin/tool-intakes/{intake_id}/history", headers=auth_headers(ADMIN_TOKEN)
        )

        assert response.status_code == 200
        entries = response.json()["data"]
        actions = sorted(e["action"] for e in entries)
        assert actions == ["created", "linked", "linked", "status_changed"]
        change = [e for e in entries if e["action"] == "status_changed"][0]
        assert change["from_status"] == "pending_review"
        assert change["to_status"] == "approved"
        assert change["actor_id"] == ADMIN_ID

    def test_history_unknown_intake(self, client):
        response = client.get(
            "/admin/tool-intakes/missing/history", headers=auth_headers(ADMIN_TOKEN)
        )

        assert response.status_code == 404
