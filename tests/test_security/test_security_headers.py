"""
Security Headers and error leakage tests (OWASP A05).
"""

import pytest

from complianceos.middleware.request_context import workspace_id_from_path
from complianceos.middleware.security_headers import SECURITY_HEADERS, is_file_download


@pytest.mark.asyncio
class TestSecurityHeaders:
    async def test_headers_on_success(self, client):
        response = await client.get("/api/v1/clients")
        assert response.status_code == 200
        for header, value in SECURITY_HEADERS.items():
            assert response.headers[header] == value

    async def test_invalid_token_rejected(self, client):
        response = await client.get("/api/v1/clients", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401
        assert "Traceback" not in response.text

    async def test_request_id_echoed(self, client):
        response = await client.get("/api/v1/clients", headers={"X-Request-ID": "req-123"})
        assert response.headers.get("X-Request-ID") == "req-123"

    async def test_not_found_does_not_leak_internals(self, client):
        response = await client.get("/api/v1/clients/not-a-uuid")
        assert response.status_code in (404, 422)
        assert "Traceback" not in response.text


def test_download_paths_detected():
    assert is_file_download("/api/v1/clients/abc/evidence/files/123/download")
    assert not is_file_download("/api/v1/clients/abc/evidence/files")
    assert not is_file_download("/download")


def test_workspace_id_extracted_for_logging():
    cid = "3F2504E0-4F89-11D3-9A0C-0305E82C3301"
    assert workspace_id_from_path(f"/api/v1/clients/{cid}/risks/matrix") == cid.lower()
    assert workspace_id_from_path(f"/api/v1/clients/{cid}") == cid.lower()
    assert workspace_id_from_path("/api/v1/clients") is None
    assert workspace_id_from_path("/api/v1/audit-trail") is None
