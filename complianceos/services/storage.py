"""
Local-disk object storage for evidence files.

Objects live under UPLOAD_DIR/<client_id>/<uuid>-<filename>; the key is the
path relative to UPLOAD_DIR and the URL is UPLOAD_BASE_URL/<key>. Disk changes
made on behalf of a session are tied to its transaction outcome.
"""

import uuid
from dataclasses import dataclass
from pathlib import Path

import structlog
from fastapi import UploadFile
from sqlalchemy import event
from sqlalchemy.orm import Session

from complianceos.config import settings
from complianceos.services.exceptions import DomainError
from complianceos.services.input_sanitizer import sanitize_filename

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 1024 * 1024


class FileTooLargeError(DomainError):
    status_code = 413


@dataclass
class StoredObject:
    key: str
    url: str
    filename: str
    size: int
    content_type: str | None


def _root() -> Path:
    return Path(settings.upload_dir).resolve()


def object_path(key: str) -> Path:
    """Absolute path of a stored key; rejects keys escaping the upload root."""
    root = _root()
    path = (root / key).resolve()
    if root not in path.parents:
        raise DomainError("Invalid file key")
    return path


def object_url(key: str) -> str:
    return f"{settings.upload_base_url.rstrip('/')}/{key}"


async def save_upload(client_id: uuid.UUID, upload: UploadFile) -> StoredObject:
    """Stream an upload to disk, enforcing MAX_UPLOAD_BYTES. Empty files are rejected."""
    filename = sanitize_filename(upload.filename)
    key = f"{client_id}/{uuid.uuid4().hex}-{filename}"
    path = object_path(key)
    path.parent.mkdir(parents=True, exist_ok=True)

    size = 0
    try:
        with path.open("wb") as out:
            while chunk := await upload.read(CHUNK_SIZE):
                size += len(chunk)
                if size > settings.max_upload_bytes:
                    raise FileTooLargeError(
                        f"File exceeds the {settings.max_upload_bytes} byte upload limit"
                    )
                out.write(chunk)
        if size == 0:
            raise DomainError("Uploaded file is empty")
    except DomainError:
        path.unlink(missing_ok=True)
        raise

    logger.info("file_stored", client_id=str(client_id), key=key, size=size)
    return StoredObject(
        key=key,
        url=object_url(key),
        filename=upload.filename or filename,
        size=size,
        content_type=upload.content_type,
    )


def delete_object(key: str) -> bool:
    """Remove a stored object. Returns False when it was already gone."""
    path = object_path(key)
    if not path.exists():
        logger.warning("file_missing_on_delete", key=key)
        return False
    path.unlink()
    logger.info("file_deleted", key=key)
    return True


# ── Transaction hooks ────────────────────────────────────────────────────
#
# Object changes follow the database transaction that references them:
# deletes wait for the commit and fresh uploads are removed if it never comes.

_PENDING_DELETES = "storage_pending_deletes"
_UNCOMMITTED_UPLOADS = "storage_uncommitted_uploads"


def delete_after_commit(session, key: str) -> None:
    """Remove the object once the session's transaction commits."""
    session.info.setdefault(_PENDING_DELETES, []).append(key)


def discard_on_rollback(session, key: str) -> None:
    """Remove a just-saved object unless the session's transaction commits."""
    session.info.setdefault(_UNCOMMITTED_UPLOADS, []).append(key)


def _remove_all(keys: list[str], reason: str) -> None:
    for key in keys:
        try:
            delete_object(key)
        except OSError as e:
            logger.error("file_delete_failed", key=key, reason=reason, error=str(e))


@event.listens_for(Session, "after_commit")
def _apply_after_commit(session):
    session.info.pop(_UNCOMMITTED_UPLOADS, None)
    _remove_all(session.info.pop(_PENDING_DELETES, []), reason="committed_delete")


@event.listens_for(Session, "after_transaction_end")
def _discard_after_rollback(session, transaction):
    if transaction.parent is not None:
        return
    session.info.pop(_PENDING_DELETES, None)
    _remove_all(session.info.pop(_UNCOMMITTED_UPLOADS, []), reason="rolled_back_upload")
