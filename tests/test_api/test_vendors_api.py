"""
Tests for vendors, the onboarding wizard, DPA templates and vendor DPAs.

Covers:
- Vendor CRUD, search and stats
- Onboarding: start → data mapping → submit → decision
- Organization DPA templates (default handling, versioning)
- Vendor DPA generation and status transitions
"""

import pytest

TEMPLATE = (
    "Data Processing Agreement between {{client_name}} and {{vendor_name}} ({{vendor_website}}).\n"
    "Categories: {{data_categories}}. Effective {{date}}. Ref {{contract_ref}}."
)


@pytest.fixture
def base_url(workspace):
    return f"/api/v1/clients/{workspace.id}"


async def _template(client, **fields) -> dict:
    response = await client.post(
        "/api/v1/dpa-templates", json={"name": "Standard DPA", "content": TEMPLATE, **fields}
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestVendors:
    @pytest.mark.asyncio
    async def test_crud_and_search(self, client, base_url):
        created = await client.post(
            f"{base_url}/vendors", json={"name": "Stripe", "criticality": "High", "is_subprocessor": True}
        )
        assert created.status_code == 201, created.text
        await client.post(f"{base_url}/vendors", json={"name": "Slack"})

        found = await client.get(f"{base_url}/vendors", params={"q": "str"})
        assert [v["name"] for v in found.json()] == ["Stripe"]

        high = await client.get(f"{base_url}/vendors", params={"criticality": "High"})
        assert len(high.json()) == 1

        updated = await client.patch(f"{base_url}/vendors/{created.json()['id']}", json={"uses_ai": True})
        assert updated.json()["uses_ai"] is True

        stats = (await client.get(f"{base_url}/vendors/stats")).json()
        assert stats["total"] == 2
        assert stats["high"] == 1
        assert stats["low"] == 1
        assert stats["subprocessors"] == 1

    @pytest.mark.asyncio
    async def test_like_wildcards_are_literal(self, client, base_url):
        await client.post(f"{base_url}/vendors", json={"name": "Acme"})
        response = await client.get(f"{base_url}/vendors", params={"q": "%"})
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_invalid_criticality(self, client, base_url):
        response = await client.post(f"{base_url}/vendors", json={"name": "X", "criticality": "Extreme"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete_needs_workspace_admin(
        self, client, workspace, base_url, member_user, add_member, headers_for
    ):
        vendor = (await client.post(f"{base_url}/vendors", json={"name": "Zoom"})).json()
        await add_member(workspace, member_user, "editor")
        denied = await client.delete(f"{base_url}/vendors/{vendor['id']}", headers=headers_for(member_user))
        assert denied.status_code == 403

        deleted = await client.delete(f"{base_url}/vendors/{vendor['id']}")
        assert deleted.status_code == 204
        assert (await client.get(f"{base_url}/vendors/{vendor['id']}")).status_code == 404


class TestOnboarding:
    @pytest.mark.asyncio
    async def test_full_wizard_with_default_template(self, client, base_url):
        await _template(client, is_default=True)

        started = await client.post(
            f"{base_url}/vendors/onboarding",
            json={"name": "Snowflake", "website": "https://snowflake.com", "criticality": "High"},
        )
        assert started.status_code == 201
        vendor = started.json()
        assert vendor["status"] == "Onboarding"
        assert vendor["review_status"] == "needs_review"

        mapped = await client.put(
            f"{base_url}/vendors/{vendor['id']}/data-mapping",
            json={"data_categories": ["Customer PII", "Billing"], "is_subprocessor": True},
        )
        assert mapped.status_code == 200

        dpa = await client.post(f"{base_url}/vendors/{vendor['id']}/onboarding/submit", json={})
        assert dpa.status_code == 200, dpa.text
        content = dpa.json()["content"]
        assert "between Globex Corp and Snowflake (https://snowflake.com)" in content
        assert "Categories: Customer PII, Billing." in content
        assert "{{contract_ref}}" in content
        assert dpa.json()["status"] == "Draft"

        again = await client.post(f"{base_url}/vendors/{vendor['id']}/onboarding/submit", json={})
        assert again.status_code == 409

        decided = await client.post(
            f"{base_url}/vendors/{vendor['id']}/onboarding/decision", json={"decision": "approved"}
        )
        assert decided.status_code == 200
        assert decided.json()["status"] == "Active"
        assert decided.json()["review_status"] == "approved"

    @pytest.mark.asyncio
    async def test_rejection_deactivates(self, client, base_url):
        vendor = (await client.post(f"{base_url}/vendors/onboarding", json={"name": "Shady"})).json()
        await client.post(f"{base_url}/vendors/{vendor['id']}/onboarding/submit", json={})
        decided = await client.post(
            f"{base_url}/vendors/{vendor['id']}/onboarding/decision", json={"decision": "rejected"}
        )
        assert decided.json()["status"] == "Inactive"
        assert decided.json()["review_status"] == "rejected"

    @pytest.mark.asyncio
    async def test_decision_requires_submission(self, client, base_url):
        vendor = (await client.post(f"{base_url}/vendors/onboarding", json={"name": "Early"})).json()
        response = await client.post(
            f"{base_url}/vendors/{vendor['id']}/onboarding/decision", json={"decision": "approved"}
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_mapping_only_while_onboarding(self, client, base_url):
        vendor = (await client.post(f"{base_url}/vendors", json={"name": "Active Co"})).json()
        response = await client.put(f"{base_url}/vendors/{vendor['id']}/data-mapping", json={})
        assert response.status_code == 409


class TestDpaTemplates:
    @pytest.mark.asyncio
    async def test_single_default(self, client):
        first = await _template(client, is_default=True)
        second = await _template(client, name="EU DPA", is_default=True)

        listed = {t["id"]: t for t in (await client.get("/api/v1/dpa-templates")).json()}
        assert listed[first["id"]]["is_default"] is False
        assert listed[second["id"]]["is_default"] is True

    @pytest.mark.asyncio
    async def test_content_change_bumps_version(self, client):
        template = await _template(client)
        renamed = await client.patch(f"/api/v1/dpa-templates/{template['id']}", json={"name": "Renamed"})
        assert renamed.json()["version"] == 1
        changed = await client.patch(f"/api/v1/dpa-templates/{template['id']}", json={"content": "New text"})
        assert changed.json()["version"] == 2

    @pytest.mark.asyncio
    async def test_member_cannot_manage_templates(self, client, member_user, headers_for):
        response = await client.post(
            "/api/v1/dpa-templates",
            json={"name": "Mine", "content": "x"},
            headers=headers_for(member_user),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_templates_are_org_scoped(self, client, outsider_user, headers_for):
        template = await _template(client)
        response = await client.get(f"/api/v1/dpa-templates/{template['id']}", headers=headers_for(outsider_user))
        assert response.status_code == 404
        deleted = await client.delete(f"/api/v1/dpa-templates/{template['id']}")
        assert deleted.status_code == 204


class TestVendorDpas:
    @pytest.mark.asyncio
    async def test_generate_and_sign(self, client, base_url):
        template = await _template(client)
        vendor = (await client.post(f"{base_url}/vendors", json={"name": "Datadog"})).json()

        dpa = await client.post(f"{base_url}/vendors/{vendor['id']}/dpas", json={"template_id": template["id"]})
        assert dpa.status_code == 201
        assert "Categories: Not specified." in dpa.json()["content"]
        dpa_id = dpa.json()["id"]

        review = await client.patch(f"{base_url}/dpas/{dpa_id}/status", json={"status": "Review"})
        assert review.json()["status"] == "Review"
        signed = await client.patch(f"{base_url}/dpas/{dpa_id}/status", json={"status": "Signed"})
        assert signed.json()["signed_at"] is not None

        back = await client.patch(f"{base_url}/dpas/{dpa_id}/status", json={"status": "Draft"})
        assert back.status_code == 409

        listed = await client.get(f"{base_url}/vendors/{vendor['id']}/dpas")
        assert [d["status"] for d in listed.json()] == ["Signed"]

    @pytest.mark.asyncio
    async def test_reopen_archived_bumps_version(self, client, base_url):
        vendor = (await client.post(f"{base_url}/vendors", json={"name": "Notion"})).json()
        dpa = (
            await client.post(f"{base_url}/vendors/{vendor['id']}/dpas", json={"content": "Custom terms"})
        ).json()
        await client.patch(f"{base_url}/dpas/{dpa['id']}/status", json={"status": "Archived"})
        reopened = await client.patch(f"{base_url}/dpas/{dpa['id']}/status", json={"status": "Draft"})
        assert reopened.json()["version"] == 2

    @pytest.mark.asyncio
    async def test_template_or_content_required(self, client, base_url):
        vendor = (await client.post(f"{base_url}/vendors", json={"name": "Empty"})).json()
        response = await client.post(f"{base_url}/vendors/{vendor['id']}/dpas", json={})
        assert response.status_code == 400
