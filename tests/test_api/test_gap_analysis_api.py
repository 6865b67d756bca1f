"""
Tests for gap assessments and remediation tasks.
"""

import pytest


@pytest.fixture
def gap_url(workspace):
    return f"/api/v1/clients/{workspace.id}/gap-assessments"


async def _assessment(client, gap_url) -> dict:
    response = await client.post(gap_url, json={"name": "ISO readiness 2026", "framework": "ISO27001"})
    assert response.status_code == 201, response.text
    return response.json()


async def _answer(client, gap_url, assessment_id, code, **fields) -> dict:
    response = await client.put(f"{gap_url}/{assessment_id}/responses/{code}", json=fields)
    assert response.status_code == 200, response.text
    return response.json()


class TestGapAssessments:
    @pytest.mark.asyncio
    async def test_create_draft_then_in_progress(self, client, gap_url):
        assessment = await _assessment(client, gap_url)
        assert assessment["status"] == "draft"
        assert assessment["report_details"] == {}

        await _answer(client, gap_url, assessment["id"], "A.5.1", current_status="partial")
        detail = (await client.get(f"{gap_url}/{assessment['id']}")).json()
        assert detail["status"] == "in_progress"
        assert [r["control_code"] for r in detail["responses"]] == ["A.5.1"]

    @pytest.mark.asyncio
    async def test_upsert_updates_same_control(self, client, gap_url):
        assessment = await _assessment(client, gap_url)
        first = await _answer(client, gap_url, assessment["id"], "A.8.1", current_status="not_implemented")
        second = await _answer(
            client, gap_url, assessment["id"], "A.8.1", current_status="implemented", evidence_links=["doc://1"]
        )
        assert first["id"] == second["id"]
        assert second["evidence_links"] == ["doc://1"]

    @pytest.mark.asyncio
    async def test_priorities_are_scored_and_sorted(self, client, gap_url):
        assessment = await _assessment(client, gap_url)
        aid = assessment["id"]
        await _answer(client, gap_url, aid, "A.1", current_status="not_implemented", target_status="required")
        await _answer(client, gap_url, aid, "A.2", current_status="partial", evidence_links=["x"])
        await _answer(client, gap_url, aid, "A.3", current_status="implemented", target_status="not_required")
        await _answer(client, gap_url, aid, "A.4", current_status="partial", target_status="not_required")

        ranked = (await client.post(f"{gap_url}/{aid}/priorities")).json()
        assert [(r["control_code"], r["priority_score"], r["gap_severity"]) for r in ranked] == [
            ("A.1", 100, "critical"),
            ("A.2", 40, "medium"),
            ("A.4", 20, "medium"),
            ("A.3", 0, "none"),
        ]

        summary = (await client.get(f"{gap_url}/{aid}/summary")).json()
        assert summary["total"] == 4
        assert summary["by_status"]["partial"] == 2
        assert summary["by_severity"]["critical"] == 1
        assert summary["readiness_pct"] == 25

    @pytest.mark.asyncio
    async def test_completed_is_read_only(self, client, gap_url):
        assessment = await _assessment(client, gap_url)
        completed = await client.post(f"{gap_url}/{assessment['id']}/complete")
        assert completed.status_code == 200
        assert completed.json()["completed_at"] is not None

        response = await client.put(
            f"{gap_url}/{assessment['id']}/responses/A.1", json={"current_status": "partial"}
        )
        assert response.status_code == 409
        again = await client.post(f"{gap_url}/{assessment['id']}/complete")
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_report_details_merge(self, client, gap_url):
        assessment = await _assessment(client, gap_url)
        await client.patch(
            f"{gap_url}/{assessment['id']}/report",
            json={"executive_summary": "Mostly there", "report_details": {"auditor": "KPMG"}},
        )
        updated = await client.patch(
            f"{gap_url}/{assessment['id']}/report", json={"report_details": {"period": "2026"}}
        )
        data = updated.json()
        assert data["executive_summary"] == "Mostly there"
        assert data["report_details"] == {"auditor": "KPMG", "period": "2026"}

    @pytest.mark.asyncio
    async def test_viewer_cannot_answer(self, client, workspace, gap_url, member_user, add_member, headers_for):
        assessment = await _assessment(client, gap_url)
        await add_member(workspace, member_user, "viewer")
        response = await client.put(
            f"{gap_url}/{assessment['id']}/responses/A.1",
            json={"current_status": "partial"},
            headers=headers_for(member_user),
        )
        assert response.status_code == 403


class TestTasks:
    @pytest.mark.asyncio
    async def test_convert_gap_to_task_once(self, client, workspace, gap_url):
        assessment = await _assessment(client, gap_url)
        answer = await _answer(
            client, gap_url, assessment["id"], "A.9.2", current_status="not_implemented", notes="No MFA"
        )

        task = await client.post(f"{gap_url}/{assessment['id']}/responses/{answer['id']}/convert-to-task")
        assert task.status_code == 201
        assert task.json()["title"] == "REMEDIATION: A.9.2"
        assert task.json()["source_type"] == "gap_analysis"
        assert task.json()["priority"] == "high"

        again = await client.post(f"{gap_url}/{assessment['id']}/responses/{answer['id']}/convert-to-task")
        assert again.status_code == 409

        detail = (await client.get(f"{gap_url}/{assessment['id']}")).json()
        assert detail["responses"][0]["remediation_plan"].startswith("Assigned as task")

        tasks_url = f"/api/v1/clients/{workspace.id}/tasks"
        listed = (await client.get(tasks_url, params={"status": "todo"})).json()
        assert [t["id"] for t in listed] == [task.json()["id"]]

        done = await client.patch(f"{tasks_url}/{task.json()['id']}", json={"status": "done", "assignee": "CISO"})
        assert done.json()["status"] == "done"
        assert (await client.get(tasks_url, params={"status": "todo"})).json() == []

    @pytest.mark.asyncio
    async def test_unknown_task(self, client, workspace):
        response = await client.patch(
            f"/api/v1/clients/{workspace.id}/tasks/00000000-0000-0000-0000-000000000000", json={"status": "done"}
        )
        assert response.status_code == 404
