"""Audit trail API schemas."""

from typing import Optional

from pydantic import BaseModel, Field

from complianceos.db.models import SecurityAuditLog


def _str_or_none(value) -> Optional[str]:
    return str(value) if value else None


class AuditEventResponse(BaseModel):
    id: str
    sequence: int
    timestamp: str
    action: str
    status: str
    client_id: Optional[str] = None
    user_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    ip_address: Optional[str] = None
    request_method: Optional[str] = None
    request_path: Optional[str] = None
    details: Optional[dict] = None

    @classmethod
    def from_entry(cls, entry: SecurityAuditLog) -> "AuditEventResponse":
        return cls(
            id=str(entry.id),
            sequence=entry.sequence,
            timestamp=entry.timestamp.isoformat(),
            action=entry.action,
            status=entry.status,
            client_id=_str_or_none(entry.client_id),
            user_id=_str_or_none(entry.user_id),
            resource_type=entry.resource_type,
            resource_id=entry.resource_id,
            ip_address=entry.ip_address,
            request_method=entry.request_method,
            request_path=entry.request_path,
            details=entry.details,
        )


class AuditTrailResponse(BaseModel):
    events: list[AuditEventResponse] = Field(default_factory=list)
    total: int = 0
    has_more: bool = False


class AuditChainBreak(BaseModel):
    entry_id: str
    sequence: int
    timestamp: str
    issue: str
    expected: Optional[str] = None
    actual: Optional[str] = None


class AuditIntegrityResponse(BaseModel):
    status: str
    total_entries: int
    chain_intact: bool
    breaks_found: int = 0
    breaks: list[AuditChainBreak] = Field(default_factory=list)
