"""
Tests for notification settings, digest sends, reports and the audit trail.
"""

from datetime import date, timedelta

import pytest


@pytest.fixture
def notif_url(workspace):
    return f"/api/v1/clients/{workspace.id}/notifications"


async def _overdue_treatment(client, workspace, days_late=5) -> dict:
    risks_url = f"/api/v1/clients/{workspace.id}/risks"
    assessment = await client.put(
        f"{risks_url}/assessments", json={"title": "Data leak", "likelihood": 3, "impact": 4}
    )
    treatment = await client.post(
        f"{risks_url}/assessments/{assessment.json()['id']}/treatments",
        json={
            "treatment_type": "mitigate",
            "strategy": "Encrypt laptops",
            "due_date": (date.today() - timedelta(days=days_late)).isoformat(),
        },
    )
    assert treatment.status_code == 201, treatment.text
    return treatment.json()


class TestSettings:
    @pytest.mark.asyncio
    async def test_defaults_on_first_read(self, client, notif_url):
        response = await client.get(f"{notif_url}/settings")
        assert response.status_code == 200
        data = response.json()
        assert data["email_enabled"] is True
        assert data["upcoming_review_days"] == 7
        assert data["daily_digest_enabled"] is False
        assert data["weekly_digest_enabled"] is True
        assert data["webhook_url"] == ""

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, client, notif_url):
        await client.put(f"{notif_url}/settings", json={"upcoming_review_days": 14})
        updated = await client.put(f"{notif_url}/settings", json={"webhook_url": "https://hooks.example.com/grc"})
        assert updated.status_code == 200
        assert updated.json()["upcoming_review_days"] == 14
        assert updated.json()["webhook_url"] == "https://hooks.example.com/grc"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["http://127.0.0.1/hook", "ftp://example.com/x", "http://10.0.0.5/"])
    async def test_private_webhook_rejected(self, client, notif_url, url):
        response = await client.put(f"{notif_url}/settings", json={"webhook_url": url})
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Invalid webhook URL")

    @pytest.mark.asyncio
    async def test_editor_cannot_update(self, client, workspace, notif_url, member_user, add_member, headers_for):
        await add_member(workspace, member_user, "editor")
        response = await client.put(
            f"{notif_url}/settings", json={"email_enabled": False}, headers=headers_for(member_user)
        )
        assert response.status_code == 403


class TestDigests:
    @pytest.mark.asyncio
    async def test_nothing_to_send(self, client, notif_url, outbox):
        response = await client.post(f"{notif_url}/send-overdue")
        assert response.status_code == 200
        assert response.json() == {
            "sent": False,
            "overdue_count": 0,
            "upcoming_count": 0,
            "recipients": 0,
            "reason": "no_items",
        }
        assert outbox.emails == []

        logs = (await client.get(f"{notif_url}/logs")).json()
        assert [(log["type"], log["status"]) for log in logs] == [("overdue_alert", "skipped")]
        assert logs[0]["metadata"]["reason"] == "no_items"

    @pytest.mark.asyncio
    async def test_overdue_alert_reaches_owner(self, client, workspace, notif_url, owner_user, outbox):
        await _overdue_treatment(client, workspace)

        response = await client.post(f"{notif_url}/send-overdue")
        data = response.json()
        assert data["sent"] is True
        assert data["overdue_count"] == 1
        assert data["recipients"] == 1

        assert len(outbox.emails) == 1
        message = outbox.emails[0]
        assert message.title == "Risk Digest: 1 Overdue Items"
        assert message.to_emails == [owner_user.email]
        assert "Encrypt laptops" in message.body
        assert "5 days overdue" in message.body
        assert outbox.webhook.messages == []

        logs = (await client.get(f"{notif_url}/logs")).json()
        assert [(log["type"], log["channel"], log["status"]) for log in logs] == [
            ("overdue_alert", "email", "sent")
        ]
        assert logs[0]["metadata"]["recipients"] == 1

    @pytest.mark.asyncio
    async def test_webhook_added_when_configured(self, client, workspace, notif_url, outbox):
        await client.put(f"{notif_url}/settings", json={"webhook_url": "https://hooks.example.com/grc"})
        await _overdue_treatment(client, workspace)

        await client.post(f"{notif_url}/send-overdue")
        assert len(outbox.webhook.messages) == 1
        assert outbox.webhook.configs[0] == {"url": "https://hooks.example.com/grc"}

    @pytest.mark.asyncio
    async def test_overdue_control_due_date(self, client, workspace, notif_url, adopted_controls, outbox):
        cc = adopted_controls[0]
        await client.patch(
            f"/api/v1/clients/{workspace.id}/controls/{cc['id']}",
            json={"due_date": (date.today() - timedelta(days=2)).isoformat()},
        )
        data = (await client.post(f"{notif_url}/send-overdue")).json()
        assert data["sent"] is True
        assert "Control:" in outbox.emails[0].body

    @pytest.mark.asyncio
    async def test_upcoming_ignores_overdue(self, client, workspace, notif_url):
        await _overdue_treatment(client, workspace)
        data = (await client.post(f"{notif_url}/send-upcoming")).json()
        assert data["sent"] is False
        assert data["reason"] == "no_items"

    @pytest.mark.asyncio
    async def test_toggles_block_sending(self, client, workspace, notif_url, outbox):
        await _overdue_treatment(client, workspace)

        daily = (await client.post(f"{notif_url}/send-daily")).json()
        assert daily["reason"] == "daily_disabled"

        weekly = (await client.post(f"{notif_url}/send-weekly")).json()
        assert weekly["sent"] is True
        assert outbox.emails[-1].title.startswith("Weekly Risk Digest")

        await client.put(f"{notif_url}/settings", json={"email_enabled": False})
        blocked = (await client.post(f"{notif_url}/send-weekly")).json()
        assert blocked["reason"] == "email_disabled"

    @pytest.mark.asyncio
    async def test_editor_cannot_send(self, client, workspace, notif_url, member_user, add_member, headers_for):
        await add_member(workspace, member_user, "editor")
        response = await client.post(f"{notif_url}/send-overdue", headers=headers_for(member_user))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_workspace_admin_can_send(
        self, client, workspace, notif_url, member_user, add_member, headers_for
    ):
        await add_member(workspace, member_user, "admin")
        response = await client.post(f"{notif_url}/send-overdue", headers=headers_for(member_user))
        assert response.status_code == 200


class TestTestNotification:
    @pytest.mark.asyncio
    async def test_sends_to_caller(self, client, notif_url, owner_user, outbox):
        response = await client.post(f"{notif_url}/test")
        assert response.status_code == 200
        results = response.json()["results"]
        assert results["email"]["status"] == "sent"
        assert "webhook" not in results
        assert outbox.emails[0].to_emails == [owner_user.email]

        logs = (await client.get(f"{notif_url}/logs", params={"type": "test"})).json()
        assert len(logs) == 1


class TestReports:
    @pytest.mark.asyncio
    async def test_json_report(self, client, workspace, adopted_controls):
        await client.patch(
            f"/api/v1/clients/{workspace.id}/controls/{adopted_controls[0]['id']}", json={"status": "implemented"}
        )
        response = await client.get(f"/api/v1/clients/{workspace.id}/reports/compliance")
        assert response.status_code == 200
        report = response.json()
        assert report["client"]["name"] == "Globex Corp"
        assert report["compliance"]["score"] == 8
        assert [f["framework"] for f in report["frameworks"]] == ["ISO/IEC 27001"]
        assert report["overdue_items"] == 0

    @pytest.mark.asyncio
    async def test_csv_export(self, client, workspace, adopted_controls):
        response = await client.get(f"/api/v1/clients/{workspace.id}/reports/compliance.csv")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        lines = response.text.strip().splitlines()
        assert lines[0] == "framework,total,implemented,score"
        assert lines[1] == "ISO/IEC 27001,12,0,0"

    @pytest.mark.asyncio
    async def test_reports_are_workspace_scoped(self, client, workspace, outsider_user, headers_for):
        response = await client.get(
            f"/api/v1/clients/{workspace.id}/reports/compliance", headers=headers_for(outsider_user)
        )
        assert response.status_code == 404


class TestAuditTrail:
    @pytest.mark.asyncio
    async def test_events_recorded_and_filtered(self, client):
        await client.post("/api/v1/clients", json={"name": "Initech"})
        await client.post("/api/v1/clients", json={"name": "Umbrella"})

        response = await client.get("/api/v1/audit-trail", params={"action": "client_created"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert {e["details"]["name"] for e in data["events"]} == {"Initech", "Umbrella"}
        assert data["events"][0]["request_method"] == "POST"

        page = (await client.get("/api/v1/audit-trail", params={"limit": 1})).json()
        assert len(page["events"]) == 1
        assert page["has_more"] is True

    @pytest.mark.asyncio
    async def test_chain_verifies(self, client):
        await client.post("/api/v1/clients", json={"name": "Initech"})
        await client.post("/api/v1/clients", json={"name": "Umbrella"})
        report = (await client.get("/api/v1/audit-trail/verify")).json()
        assert report["chain_intact"] is True
        assert report["status"] == "intact"
        assert report["total_entries"] >= 2

    @pytest.mark.asyncio
    async def test_other_org_sees_nothing(self, client, outsider_user, headers_for):
        await client.post("/api/v1/clients", json={"name": "Initech"})
        response = await client.get("/api/v1/audit-trail", headers=headers_for(outsider_user))
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_member_forbidden(self, client, member_user, headers_for):
        response = await client.get("/api/v1/audit-trail", headers=headers_for(member_user))
        assert response.status_code == 403
