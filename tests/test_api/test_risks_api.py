"""
Tests for the risk register.

Covers:
- Threat/vulnerability sequence ids
- Assessment scoring, upsert and approval
- Treatments driving residual risk, including evidence verification
- Overdue/upcoming lists and the 5x5 matrix
"""

from datetime import date, timedelta

import pytest


@pytest.fixture
def risks_url(workspace):
    return f"/api/v1/clients/{workspace.id}/risks"


async def _assessment(client, risks_url, likelihood=4, impact=5, **fields) -> dict:
    response = await client.put(
        f"{risks_url}/assessments",
        json={"title": "Ransomware on file servers", "likelihood": likelihood, "impact": impact, **fields},
    )
    assert response.status_code == 200, response.text
    return response.json()


class TestCatalog:
    @pytest.mark.asyncio
    async def test_threat_ids_are_sequential(self, client, risks_url):
        year = date.today().year
        first = await client.post(f"{risks_url}/threats", json={"name": "Phishing", "likelihood": 4})
        second = await client.post(f"{risks_url}/threats", json={"name": "Insider"})
        assert first.json()["threat_id"] == f"T-{year}-001"
        assert second.json()["threat_id"] == f"T-{year}-002"

        vuln = await client.post(f"{risks_url}/vulnerabilities", json={"name": "Unpatched VPN"})
        assert vuln.json()["vulnerability_id"] == f"V-{year}-001"

    @pytest.mark.asyncio
    async def test_threat_likelihood_range(self, client, risks_url):
        response = await client.post(f"{risks_url}/threats", json={"name": "X", "likelihood": 6})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_editor_cannot_delete_threat(
        self, client, workspace, risks_url, member_user, add_member, headers_for
    ):
        threat = (await client.post(f"{risks_url}/threats", json={"name": "Flood"})).json()
        await add_member(workspace, member_user, "editor")
        denied = await client.delete(f"{risks_url}/threats/{threat['id']}", headers=headers_for(member_user))
        assert denied.status_code == 403
        assert (await client.delete(f"{risks_url}/threats/{threat['id']}")).status_code == 204


class TestAssessments:
    @pytest.mark.asyncio
    async def test_scores_on_create(self, client, risks_url):
        assessment = await _assessment(client, risks_url)
        assert assessment["assessment_id"] == f"RA-{date.today().year}-001"
        assert assessment["inherent_score"] == 20
        assert assessment["inherent_risk"] == "Very High"
        assert assessment["residual_score"] == 20
        assert assessment["status"] == "draft"

    @pytest.mark.asyncio
    async def test_upsert_rescores(self, client, risks_url):
        assessment = await _assessment(client, risks_url)
        updated = await _assessment(client, risks_url, likelihood=2, impact=2, id=assessment["id"])
        assert updated["id"] == assessment["id"]
        assert updated["inherent_score"] == 4
        assert updated["inherent_risk"] == "Low"

    @pytest.mark.asyncio
    async def test_foreign_threat_reference(self, client, risks_url):
        other = (await client.post("/api/v1/clients", json={"name": "Elsewhere"})).json()
        threat = (
            await client.post(f"/api/v1/clients/{other['id']}/risks/threats", json={"name": "Theirs"})
        ).json()
        response = await client.put(
            f"{risks_url}/assessments",
            json={"title": "Cross", "likelihood": 1, "impact": 1, "threat_ref_id": threat["id"]},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_approval_sets_review_date(self, client, risks_url):
        assessment = await _assessment(client, risks_url)
        approved = await client.post(f"{risks_url}/assessments/{assessment['id']}/approve")
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"
        assert approved.json()["next_review_date"] is not None

    @pytest.mark.asyncio
    async def test_editor_cannot_approve(self, client, workspace, risks_url, member_user, add_member, headers_for):
        assessment = await _assessment(client, risks_url)
        await add_member(workspace, member_user, "editor")
        response = await client.post(
            f"{risks_url}/assessments/{assessment['id']}/approve", headers=headers_for(member_user)
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_delete_requires_owner(self, client, workspace, risks_url, member_user, add_member, headers_for):
        assessment = await _assessment(client, risks_url)
        await add_member(workspace, member_user, "admin")
        denied = await client.delete(
            f"{risks_url}/assessments/{assessment['id']}", headers=headers_for(member_user)
        )
        assert denied.status_code == 403
        assert (await client.delete(f"{risks_url}/assessments/{assessment['id']}")).status_code == 204


class TestTreatments:
    @pytest.mark.asyncio
    async def test_completed_mitigation_reduces_residual(self, client, risks_url):
        assessment = await _assessment(client, risks_url)  # 20
        treatment = await client.post(
            f"{risks_url}/assessments/{assessment['id']}/treatments",
            json={"treatment_type": "mitigate", "strategy": "Immutable backups"},
        )
        assert treatment.status_code == 201

        unchanged = (await client.get(f"{risks_url}/assessments/{assessment['id']}")).json()
        assert unchanged["residual_score"] == 20

        await client.patch(f"{risks_url}/treatments/{treatment.json()['id']}", json={"status": "completed"})
        reduced = (await client.get(f"{risks_url}/assessments/{assessment['id']}")).json()
        assert reduced["residual_score"] == 14  # 20 * 0.7
        assert reduced["residual_risk"] == "Medium"

    @pytest.mark.asyncio
    async def test_accept_requires_justification_and_never_reduces(self, client, risks_url):
        assessment = await _assessment(client, risks_url)
        missing = await client.post(
            f"{risks_url}/assessments/{assessment['id']}/treatments",
            json={"treatment_type": "accept", "strategy": "Live with it"},
        )
        assert missing.status_code == 400

        accepted = await client.post(
            f"{risks_url}/assessments/{assessment['id']}/treatments",
            json={
                "treatment_type": "accept",
                "strategy": "Live with it",
                "justification": "Cost exceeds impact",
                "status": "completed",
            },
        )
        assert accepted.status_code == 201
        current = (await client.get(f"{risks_url}/assessments/{assessment['id']}")).json()
        assert current["residual_score"] == 20

    @pytest.mark.asyncio
    async def test_evidence_verification_marks_treatment_effective(
        self, client, workspace, risks_url, adopted_controls
    ):
        cc = adopted_controls[0]
        assessment = await _assessment(client, risks_url)
        treatment = await client.post(
            f"{risks_url}/assessments/{assessment['id']}/treatments",
            json={"treatment_type": "mitigate", "strategy": "MFA everywhere", "client_control_id": cc["id"]},
        )
        evidence = await client.post(
            f"/api/v1/clients/{workspace.id}/evidence",
            json={"title": "MFA report", "client_control_id": cc["id"]},
        )
        await client.patch(
            f"/api/v1/clients/{workspace.id}/evidence/{evidence.json()['id']}/status", json={"status": "verified"}
        )

        treatments = (await client.get(f"{risks_url}/assessments/{assessment['id']}/treatments")).json()
        assert treatments[0]["id"] == treatment.json()["id"]
        assert treatments[0]["control_effectiveness"] == "effective"
        rescored = (await client.get(f"{risks_url}/assessments/{assessment['id']}")).json()
        assert rescored["residual_score"] == 14

    @pytest.mark.asyncio
    async def test_deleting_treatment_restores_residual(self, client, risks_url):
        assessment = await _assessment(client, risks_url)
        treatment = await client.post(
            f"{risks_url}/assessments/{assessment['id']}/treatments",
            json={"treatment_type": "avoid", "strategy": "Decommission", "status": "implemented"},
        )
        assert (await client.get(f"{risks_url}/assessments/{assessment['id']}")).json()["residual_score"] == 14
        await client.delete(f"{risks_url}/treatments/{treatment.json()['id']}")
        assert (await client.get(f"{risks_url}/assessments/{assessment['id']}")).json()["residual_score"] == 20


class TestDueDates:
    @pytest.mark.asyncio
    async def test_overdue_and_upcoming(self, client, risks_url):
        today = date.today()
        assessment = await _assessment(client, risks_url)
        await client.post(
            f"{risks_url}/assessments/{assessment['id']}/treatments",
            json={
                "treatment_type": "mitigate",
                "strategy": "Late patching",
                "due_date": (today - timedelta(days=3)).isoformat(),
            },
        )
        await client.post(
            f"{risks_url}/assessments/{assessment['id']}/treatments",
            json={
                "treatment_type": "mitigate",
                "strategy": "Soon",
                "due_date": (today + timedelta(days=2)).isoformat(),
            },
        )

        overdue = (await client.get(f"{risks_url}/overdue")).json()
        assert len(overdue) == 1
        assert overdue[0]["days_overdue"] == 3
        assert overdue[0]["priority"] == "critical"

        upcoming = (await client.get(f"{risks_url}/upcoming", params={"days": 7})).json()
        assert len(upcoming) == 1
        assert upcoming[0]["days_until"] == 2

    @pytest.mark.asyncio
    async def test_matrix_counts(self, client, risks_url):
        await _assessment(client, risks_url, likelihood=4, impact=5)
        await _assessment(client, risks_url, likelihood=4, impact=5)
        await _assessment(client, risks_url, likelihood=1, impact=2)

        matrix = (await client.get(f"{risks_url}/matrix")).json()
        assert matrix["total"] == 3
        assert matrix["matrix"][3][4] == 2
        assert matrix["matrix"][0][1] == 1
