"""
Tests for client workspaces, frameworks and client controls.

Covers:
- Client CRUD, visibility and workspace isolation
- Framework catalog, custom frameworks and controls
- Framework adoption, control updates and compliance score
- Onboarding checklist and dashboard
"""

import uuid

import pytest


class TestClientCrud:
    @pytest.mark.asyncio
    async def test_create_makes_creator_owner(self, client):
        response = await client.post("/api/v1/clients", json={"name": "Initech", "industry": "software"})
        assert response.status_code == 201, response.text
        client_id = response.json()["id"]

        members = await client.get(f"/api/v1/clients/{client_id}/members")
        assert members.status_code == 200
        assert [m["role"] for m in members.json()] == ["owner"]

    @pytest.mark.asyncio
    async def test_member_cannot_create_clients(self, client, member_user, headers_for):
        response = await client.post("/api/v1/clients", json={"name": "Nope"}, headers=headers_for(member_user))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_list_search_and_status_filter(self, client, workspace):
        await client.post("/api/v1/clients", json={"name": "Hooli", "status": "onboarding"})

        everything = await client.get("/api/v1/clients")
        assert {c["name"] for c in everything.json()} == {"Globex Corp", "Hooli"}

        searched = await client.get("/api/v1/clients", params={"q": "glob"})
        assert [c["name"] for c in searched.json()] == ["Globex Corp"]

        onboarding = await client.get("/api/v1/clients", params={"status": "onboarding"})
        assert [c["name"] for c in onboarding.json()] == ["Hooli"]

    @pytest.mark.asyncio
    async def test_member_sees_only_their_workspaces(self, client, workspace, member_user, add_member, headers_for):
        await client.post("/api/v1/clients", json={"name": "Hidden Co"})

        before = await client.get("/api/v1/clients", headers=headers_for(member_user))
        assert before.json() == []

        await add_member(workspace, member_user, "viewer")
        after = await client.get("/api/v1/clients", headers=headers_for(member_user))
        assert [c["name"] for c in after.json()] == ["Globex Corp"]

    @pytest.mark.asyncio
    async def test_non_member_is_forbidden(self, client, workspace, member_user, headers_for):
        response = await client.get(f"/api/v1/clients/{workspace.id}", headers=headers_for(member_user))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_other_organization_gets_404(self, client, workspace, outsider_user, headers_for):
        response = await client.get(f"/api/v1/clients/{workspace.id}", headers=headers_for(outsider_user))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_org_admin_acts_as_workspace_owner(self, client, workspace, admin_user, headers_for):
        response = await client.patch(
            f"/api/v1/clients/{workspace.id}", json={"industry": "banking"}, headers=headers_for(admin_user)
        )
        assert response.status_code == 200
        assert response.json()["industry"] == "banking"

    @pytest.mark.asyncio
    async def test_viewer_cannot_update(self, client, workspace, member_user, add_member, headers_for):
        await add_member(workspace, member_user, "viewer")
        response = await client.patch(
            f"/api/v1/clients/{workspace.id}", json={"name": "Renamed"}, headers=headers_for(member_user)
        )
        assert response.status_code == 403
        assert response.json()["detail"]["required_role"] == "editor"

    @pytest.mark.asyncio
    async def test_delete_requires_owner(self, client, workspace, member_user, add_member, headers_for):
        await add_member(workspace, member_user, "admin")
        denied = await client.delete(f"/api/v1/clients/{workspace.id}", headers=headers_for(member_user))
        assert denied.status_code == 403

        deleted = await client.delete(f"/api/v1/clients/{workspace.id}")
        assert deleted.status_code == 204
        gone = await client.get(f"/api/v1/clients/{workspace.id}")
        assert gone.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_with_workspace_data(self, client, workspace, adopted_controls):
        await client.post(f"/api/v1/clients/{workspace.id}/vendors", json={"name": "Cloudy"})
        deleted = await client.delete(f"/api/v1/clients/{workspace.id}")
        assert deleted.status_code == 204


class TestFrameworks:
    @pytest.mark.asyncio
    async def test_builtin_catalog(self, client):
        response = await client.get("/api/v1/frameworks")
        assert response.status_code == 200
        codes = {f["code"] for f in response.json()}
        assert {"ISO27001", "SOC2", "NIS2", "CMMC", "GDPR", "HIPAA"} <= codes
        assert all(f["built_in"] for f in response.json())

    @pytest.mark.asyncio
    async def test_custom_framework_and_controls(self, client):
        created = await client.post("/api/v1/frameworks", json={"code": "INTERNAL", "name": "Internal Baseline"})
        assert created.status_code == 201
        fid = created.json()["id"]
        assert created.json()["built_in"] is False

        control = await client.post(
            f"/api/v1/frameworks/{fid}/controls",
            json={"control_code": "IB-1", "name": "Asset inventory"},
        )
        assert control.status_code == 201
        duplicate = await client.post(
            f"/api/v1/frameworks/{fid}/controls",
            json={"control_code": "IB-1", "name": "Again"},
        )
        assert duplicate.status_code == 409

        listed = await client.get(f"/api/v1/frameworks/{fid}/controls")
        assert [c["control_code"] for c in listed.json()] == ["IB-1"]

    @pytest.mark.asyncio
    async def test_builtin_code_is_reserved(self, client):
        response = await client.post("/api/v1/frameworks", json={"code": "SOC2", "name": "Fake SOC2"})
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_builtin_controls_are_read_only(self, client, framework_id):
        fid = await framework_id("GDPR")
        response = await client.post(
            f"/api/v1/frameworks/{fid}/controls", json={"control_code": "X", "name": "Extra"}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_custom_framework_invisible_to_other_org(self, client, outsider_user, headers_for):
        created = await client.post("/api/v1/frameworks", json={"code": "PRIVATE", "name": "Private"})
        response = await client.get(
            f"/api/v1/frameworks/{created.json()['id']}/controls", headers=headers_for(outsider_user)
        )
        assert response.status_code == 404


class TestClientControls:
    @pytest.mark.asyncio
    async def test_adoption_is_idempotent(self, client, workspace, framework_id, adopted_controls):
        assert len(adopted_controls) == 12
        assert all(c["status"] == "not_implemented" for c in adopted_controls)

        fid = await framework_id("ISO27001")
        again = await client.post(f"/api/v1/clients/{workspace.id}/frameworks/{fid}")
        assert again.json() == {"added": 0, "skipped": 12}

    @pytest.mark.asyncio
    async def test_adopt_unknown_framework(self, client, workspace):
        response = await client.post(f"/api/v1/clients/{workspace.id}/frameworks/{uuid.uuid4()}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_implementing_sets_date_and_score(self, client, workspace, adopted_controls):
        first = adopted_controls[0]
        response = await client.patch(
            f"/api/v1/clients/{workspace.id}/controls/{first['id']}", json={"status": "implemented"}
        )
        assert response.status_code == 200
        assert response.json()["implementation_date"] is not None

        score = (await client.get(f"/api/v1/clients/{workspace.id}/compliance-score")).json()
        assert score["total_controls"] == 12
        assert score["implemented"] == 1
        assert score["score"] == 8  # 1/12 = 8.33 → 8

    @pytest.mark.asyncio
    async def test_not_applicable_needs_justification(self, client, workspace, adopted_controls):
        cc = adopted_controls[0]
        missing = await client.patch(
            f"/api/v1/clients/{workspace.id}/controls/{cc['id']}", json={"applicability": "not_applicable"}
        )
        assert missing.status_code == 400

        ok = await client.patch(
            f"/api/v1/clients/{workspace.id}/controls/{cc['id']}",
            json={"applicability": "not_applicable", "justification": "No on-prem servers"},
        )
        assert ok.status_code == 200

        score = (await client.get(f"/api/v1/clients/{workspace.id}/compliance-score")).json()
        assert score["total_controls"] == 11

    @pytest.mark.asyncio
    async def test_status_filter(self, client, workspace, adopted_controls):
        await client.patch(
            f"/api/v1/clients/{workspace.id}/controls/{adopted_controls[0]['id']}", json={"status": "in_progress"}
        )
        response = await client.get(f"/api/v1/clients/{workspace.id}/controls", params={"status": "in_progress"})
        assert len(response.json()) == 1

    @pytest.mark.asyncio
    async def test_empty_workspace_score_is_zero(self, client, workspace):
        score = (await client.get(f"/api/v1/clients/{workspace.id}/compliance-score")).json()
        assert score["score"] == 0
        assert score["total_controls"] == 0


class TestOverview:
    @pytest.mark.asyncio
    async def test_onboarding_tracks_progress(self, client, workspace, adopted_controls):
        status = (await client.get(f"/api/v1/clients/{workspace.id}/onboarding-status")).json()
        assert status["has_frameworks"] is True
        assert status["has_vendors"] is False
        assert status["completed_steps"] == 1
        assert status["total_steps"] == 6

    @pytest.mark.asyncio
    async def test_dashboard_shape(self, client, workspace, adopted_controls):
        response = await client.get(f"/api/v1/clients/{workspace.id}/dashboard")
        assert response.status_code == 200
        data = response.json()
        assert data["compliance"]["total_controls"] == 12
        assert data["open_tasks"] == 0
        assert "risk_levels" in data

    @pytest.mark.asyncio
    async def test_policy_coverage_without_policies(self, client, workspace, adopted_controls):
        coverage = (await client.get(f"/api/v1/clients/{workspace.id}/policy-coverage")).json()
        assert coverage["total"] == 12
        assert coverage["mapped"] == 0
        assert coverage["coverage"] == 0
