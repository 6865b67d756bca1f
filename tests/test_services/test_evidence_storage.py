"""
Evidence file storage follows the database transaction.

Tests: deletes only reach the disk after commit, uploads from a
rolled back transaction are removed.
"""

import io

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from complianceos.schemas.evidence import EvidenceCreate
from complianceos.services import evidence_service, storage
from complianceos.services.exceptions import NotFoundError


def _upload(content: bytes, filename: str = "review.pdf") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": "application/pdf"}),
    )


async def _stored_file(session_factory, workspace):
    async with session_factory() as session:
        evidence = await evidence_service.create_evidence(
            session, workspace.id, EvidenceCreate(title="Access review Q3")
        )
        record = await evidence_service.upload_file(session, workspace.id, evidence.id, _upload(b"%PDF-1.4"))
        await session.commit()
    assert storage.object_path(record.file_key).exists()
    return record


@pytest.mark.asyncio
class TestDeleteWaitsForCommit:
    async def test_rolled_back_delete_keeps_object(self, session_factory, workspace):
        record = await _stored_file(session_factory, workspace)

        async with session_factory() as session:
            await evidence_service.delete_file(session, workspace.id, record.id)
            assert storage.object_path(record.file_key).exists()
            await session.rollback()

        assert storage.object_path(record.file_key).exists()
        async with session_factory() as session:
            kept = await evidence_service.get_file(session, workspace.id, record.id)
        assert kept.file_key == record.file_key

    async def test_committed_delete_removes_object(self, session_factory, workspace):
        record = await _stored_file(session_factory, workspace)

        async with session_factory() as session:
            await evidence_service.delete_file(session, workspace.id, record.id)
            await session.commit()

        assert not storage.object_path(record.file_key).exists()
        async with session_factory() as session:
            with pytest.raises(NotFoundError):
                await evidence_service.get_file(session, workspace.id, record.id)

    async def test_rolled_back_evidence_delete_keeps_object(self, session_factory, workspace):
        record = await _stored_file(session_factory, workspace)

        async with session_factory() as session:
            await evidence_service.delete_evidence(session, workspace.id, record.evidence_id)
            await session.rollback()

        assert storage.object_path(record.file_key).exists()


@pytest.mark.asyncio
class TestUploadFollowsTransaction:
    async def test_rolled_back_upload_removed(self, session_factory, workspace):
        async with session_factory() as session:
            evidence = await evidence_service.create_evidence(
                session, workspace.id, EvidenceCreate(title="Pen test report")
            )
            await session.commit()

        async with session_factory() as session:
            record = await evidence_service.upload_file(session, workspace.id, evidence.id, _upload(b"findings"))
            path = storage.object_path(record.file_key)
            assert path.exists()
            await session.rollback()

        assert not path.exists()

    async def test_upload_abandoned_without_commit_removed(self, session_factory, workspace):
        async with session_factory() as session:
            evidence = await evidence_service.create_evidence(
                session, workspace.id, EvidenceCreate(title="Pen test report")
            )
            await session.commit()

        async with session_factory() as session:
            record = await evidence_service.upload_file(session, workspace.id, evidence.id, _upload(b"findings"))
            path = storage.object_path(record.file_key)

        assert not path.exists()

    async def test_committed_upload_kept(self, session_factory, workspace):
        record = await _stored_file(session_factory, workspace)
        async with session_factory() as session:
            await session.commit()
        assert storage.object_path(record.file_key).read_bytes() == b"%PDF-1.4"
