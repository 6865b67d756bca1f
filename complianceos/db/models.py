"""
ComplianceOS SQLAlchemy Models.

Uses compatibility types for SQLite (dev) + PostgreSQL (prod).
Every workspace table carries client_id; organization tables carry
organization_id. Repositories always filter by one of the two.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from complianceos.db.compat import GUID, JSONType, StringList
from complianceos.db.engine import Base
from complianceos.services.encryption import EncryptedString


def _genuuid():
    return uuid.uuid4()


# ──────────────────────────────────────────────────────────────────────────────
# 1. Tenant, users & audit
# ──────────────────────────────────────────────────────────────────────────────


class Organization(Base):
    __tablename__ = "cos_organizations"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    industry: Mapped[Optional[str]] = mapped_column(String(100))
    plan: Mapped[str] = mapped_column(String(50), default="starter")
    settings: Mapped[dict] = mapped_column(JSONType(), default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class User(Base):
    __tablename__ = "cos_users"
    __table_args__ = (Index("ix_users_organization", "organization_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_organizations.id"), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), default="member")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SecurityAuditLog(Base):
    """
    Append-only audit log for security and domain events.

    NO UPDATE, NO DELETE on this table. Each entry includes the hash of the
    previous entry for tamper detection.
    """

    __tablename__ = "cos_security_audit_log"
    __table_args__ = (
        Index("ix_security_audit_timestamp", "timestamp"),
        Index("ix_security_audit_organization", "organization_id"),
        Index("ix_security_audit_action", "action"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())

    action: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_type: Mapped[Optional[str]] = mapped_column(String(100))
    resource_id: Mapped[Optional[str]] = mapped_column(String(128))

    ip_address: Mapped[Optional[str]] = mapped_column(String(50))
    user_agent: Mapped[Optional[str]] = mapped_column(String(500))
    request_method: Mapped[Optional[str]] = mapped_column(String(10))
    request_path: Mapped[Optional[str]] = mapped_column(String(500))

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="success")
    details: Mapped[Optional[dict]] = mapped_column(JSONType())

    previous_hash: Mapped[Optional[str]] = mapped_column(String(128))
    entry_hash: Mapped[Optional[str]] = mapped_column(String(128))


class AuditChainHead(Base):
    """
    Single row pointing at the newest audit entry.

    Appending to the chain updates this row first, so concurrent appends
    queue on its row lock instead of reading the same predecessor.
    """

    __tablename__ = "cos_audit_chain_head"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    last_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_hash: Mapped[Optional[str]] = mapped_column(String(128))


# ──────────────────────────────────────────────────────────────────────────────
# 2. Client workspaces & invitations
# ──────────────────────────────────────────────────────────────────────────────


class Client(Base):
    __tablename__ = "cos_clients"
    __table_args__ = (Index("ix_clients_organization", "organization_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_organizations.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    industry: Mapped[Optional[str]] = mapped_column(String(100))
    size: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(30), default="active")
    logo_url: Mapped[Optional[str]] = mapped_column(String(1024))
    primary_contact_name: Mapped[Optional[str]] = mapped_column(String(255))
    primary_contact_email: Mapped[Optional[str]] = mapped_column(EncryptedString(500))
    primary_contact_phone: Mapped[Optional[str]] = mapped_column(EncryptedString(500))
    plan_tier: Mapped[str] = mapped_column(String(50), default="standard")
    active_modules: Mapped[list] = mapped_column(StringList(), default=list)
    brand_primary_color: Mapped[Optional[str]] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ClientMembership(Base):
    __tablename__ = "cos_client_memberships"
    __table_args__ = (
        UniqueConstraint("client_id", "user_id", name="uq_membership_client_user"),
        Index("ix_memberships_user", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_users.id"), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="viewer")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Invitation(Base):
    __tablename__ = "cos_invitations"
    __table_args__ = (Index("ix_invitations_organization", "organization_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_organizations.id"), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="viewer")
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("cos_clients.id"))
    invited_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("cos_users.id"))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# 3. Frameworks & controls
# ──────────────────────────────────────────────────────────────────────────────


class Framework(Base):
    """Compliance framework. organization_id NULL = built-in catalog entry."""

    __tablename__ = "cos_frameworks"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("cos_organizations.id"))
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    version: Mapped[Optional[str]] = mapped_column(String(50))
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Control(Base):
    __tablename__ = "cos_controls"
    __table_args__ = (
        UniqueConstraint("framework_id", "control_code", name="uq_control_framework_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    framework_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_frameworks.id"), nullable=False)
    control_code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ClientControl(Base):
    __tablename__ = "cos_client_controls"
    __table_args__ = (
        UniqueConstraint("client_id", "control_id", name="uq_client_control"),
        Index("ix_client_controls_client", "client_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    control_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_controls.id"), nullable=False)
    framework_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_frameworks.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="not_implemented")
    applicability: Mapped[str] = mapped_column(String(30), nullable=False, default="applicable")
    justification: Mapped[Optional[str]] = mapped_column(Text)
    implementation_date: Mapped[Optional[date]] = mapped_column(Date)
    owner: Mapped[Optional[str]] = mapped_column(String(255))
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# 4. Evidence
# ──────────────────────────────────────────────────────────────────────────────


class Evidence(Base):
    __tablename__ = "cos_evidence"
    __table_args__ = (
        Index("ix_evidence_client", "client_id"),
        Index("ix_evidence_client_control", "client_control_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    client_control_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("cos_client_controls.id"))
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    evidence_type: Mapped[str] = mapped_column(String(50), default="document")
    framework: Mapped[Optional[str]] = mapped_column(String(100))
    location: Mapped[Optional[str]] = mapped_column(String(1024))
    integration: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")
    owner: Mapped[Optional[str]] = mapped_column(String(255))
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    last_verified: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class EvidenceFile(Base):
    __tablename__ = "cos_evidence_files"
    __table_args__ = (Index("ix_evidence_files_evidence", "evidence_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    evidence_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_evidence.id"), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    content_type: Mapped[Optional[str]] = mapped_column(String(100))
    file_size: Mapped[Optional[int]] = mapped_column(Integer)
    uploaded_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# 5. Vendors & DPAs
# ──────────────────────────────────────────────────────────────────────────────


class Vendor(Base):
    __tablename__ = "cos_vendors"
    __table_args__ = (Index("ix_vendors_client", "client_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    website: Mapped[Optional[str]] = mapped_column(String(500))
    category: Mapped[Optional[str]] = mapped_column(String(100))
    criticality: Mapped[str] = mapped_column(String(20), default="Low")
    data_access: Mapped[str] = mapped_column(String(50), default="Internal")
    status: Mapped[str] = mapped_column(String(30), default="Active")
    review_status: Mapped[str] = mapped_column(String(30), default="needs_review")
    is_subprocessor: Mapped[bool] = mapped_column(Boolean, default=False)
    uses_ai: Mapped[bool] = mapped_column(Boolean, default=False)
    data_categories: Mapped[list] = mapped_column(StringList(), default=list)
    contact_email: Mapped[Optional[str]] = mapped_column(EncryptedString(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DpaTemplate(Base):
    __tablename__ = "cos_dpa_templates"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_organizations.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    jurisdiction: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class VendorDpa(Base):
    __tablename__ = "cos_vendor_dpas"
    __table_args__ = (Index("ix_vendor_dpas_client_vendor", "client_id", "vendor_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    vendor_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_vendors.id"), nullable=False)
    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("cos_dpa_templates.id"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(30), default="Draft")
    version: Mapped[int] = mapped_column(Integer, default=1)
    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# 6. Risk register
# ──────────────────────────────────────────────────────────────────────────────


class Threat(Base):
    __tablename__ = "cos_threats"
    __table_args__ = (Index("ix_threats_client", "client_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    threat_id: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    source: Mapped[Optional[str]] = mapped_column(String(100))
    intent: Mapped[Optional[str]] = mapped_column(String(100))
    likelihood: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Vulnerability(Base):
    __tablename__ = "cos_vulnerabilities"
    __table_args__ = (Index("ix_vulnerabilities_client", "client_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    vulnerability_id: Mapped[str] = mapped_column(String(30), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    severity: Mapped[Optional[str]] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class RiskAssessment(Base):
    __tablename__ = "cos_risk_assessments"
    __table_args__ = (
        Index("ix_risk_assessments_client", "client_id"),
        Index("ix_risk_assessments_review", "next_review_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    assessment_id: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    threat_description: Mapped[Optional[str]] = mapped_column(Text)
    threat_ref_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("cos_threats.id"))
    vulnerability_ref_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("cos_vulnerabilities.id"))
    likelihood: Mapped[int] = mapped_column(Integer, nullable=False)
    impact: Mapped[int] = mapped_column(Integer, nullable=False)
    inherent_score: Mapped[int] = mapped_column(Integer, nullable=False)
    inherent_risk: Mapped[str] = mapped_column(String(20), nullable=False)
    residual_score: Mapped[Optional[int]] = mapped_column(Integer)
    residual_risk: Mapped[Optional[str]] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    owner: Mapped[Optional[str]] = mapped_column(String(255))
    next_review_date: Mapped[Optional[date]] = mapped_column(Date)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class RiskTreatment(Base):
    __tablename__ = "cos_risk_treatments"
    __table_args__ = (Index("ix_risk_treatments_assessment", "risk_assessment_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    risk_assessment_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_risk_assessments.id"), nullable=False)
    treatment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    strategy: Mapped[str] = mapped_column(Text, nullable=False)
    justification: Mapped[Optional[str]] = mapped_column(Text)
    owner: Mapped[Optional[str]] = mapped_column(String(255))
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="planned")
    client_control_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("cos_client_controls.id"))
    control_effectiveness: Mapped[Optional[str]] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# 7. Policies
# ──────────────────────────────────────────────────────────────────────────────


class ClientPolicy(Base):
    __tablename__ = "cos_client_policies"
    __table_args__ = (Index("ix_client_policies_client", "client_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text)
    module: Mapped[str] = mapped_column(String(20), default="general")
    status: Mapped[str] = mapped_column(String(20), default="draft")
    version: Mapped[int] = mapped_column(Integer, default=0)
    owner: Mapped[Optional[str]] = mapped_column(String(255))
    next_review_date: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PolicyVersion(Base):
    __tablename__ = "cos_policy_versions"
    __table_args__ = (Index("ix_policy_versions_policy", "client_policy_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_policy_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_client_policies.id"), nullable=False)
    version: Mapped[str] = mapped_column(String(50), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="approved")
    description: Mapped[Optional[str]] = mapped_column(Text)
    published_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    published_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class ControlPolicyMapping(Base):
    __tablename__ = "cos_control_policy_mappings"
    __table_args__ = (
        UniqueConstraint("client_control_id", "client_policy_id", name="uq_control_policy"),
        Index("ix_control_policy_client", "client_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    client_control_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_client_controls.id"), nullable=False)
    client_policy_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_client_policies.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Employee(Base):
    __tablename__ = "cos_employees"
    __table_args__ = (
        UniqueConstraint("client_id", "email", name="uq_employee_client_email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    job_title: Mapped[Optional[str]] = mapped_column(String(255))
    department: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PolicyAssignment(Base):
    __tablename__ = "cos_policy_assignments"
    __table_args__ = (
        UniqueConstraint("policy_id", "employee_id", name="uq_policy_assignment"),
        Index("ix_policy_assignments_employee", "employee_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    policy_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_client_policies.id"), nullable=False)
    employee_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_employees.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    attested_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class PolicyException(Base):
    __tablename__ = "cos_policy_exceptions"
    __table_args__ = (Index("ix_policy_exceptions_policy", "policy_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    policy_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_client_policies.id"), nullable=False)
    employee_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_employees.id"), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    expiration_date: Mapped[Optional[date]] = mapped_column(Date)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# 8. Gap analysis & tasks
# ──────────────────────────────────────────────────────────────────────────────


class GapAssessment(Base):
    __tablename__ = "cos_gap_assessments"
    __table_args__ = (Index("ix_gap_assessments_client", "client_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    framework: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="draft")
    scope: Mapped[Optional[str]] = mapped_column(Text)
    executive_summary: Mapped[Optional[str]] = mapped_column(Text)
    report_details: Mapped[dict] = mapped_column(JSONType(), default=dict)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class GapResponse(Base):
    __tablename__ = "cos_gap_responses"
    __table_args__ = (
        UniqueConstraint("assessment_id", "control_code", name="uq_gap_response_control"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    assessment_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_gap_assessments.id"), nullable=False)
    control_code: Mapped[str] = mapped_column(String(100), nullable=False)
    current_status: Mapped[Optional[str]] = mapped_column(String(30))
    target_status: Mapped[Optional[str]] = mapped_column(String(30))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    evidence_links: Mapped[list] = mapped_column(StringList(), default=list)
    priority_score: Mapped[Optional[int]] = mapped_column(Integer)
    gap_severity: Mapped[Optional[str]] = mapped_column(String(20))
    remediation_plan: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ProjectTask(Base):
    __tablename__ = "cos_project_tasks"
    __table_args__ = (Index("ix_project_tasks_client", "client_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="todo")
    priority: Mapped[str] = mapped_column(String(20), default="medium")
    assignee: Mapped[Optional[str]] = mapped_column(String(255))
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    source_type: Mapped[Optional[str]] = mapped_column(String(50))
    source_id: Mapped[Optional[str]] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# 9. Business continuity
# ──────────────────────────────────────────────────────────────────────────────


class BcProgram(Base):
    __tablename__ = "cos_bc_programs"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), unique=True, nullable=False)
    program_name: Mapped[str] = mapped_column(String(255), default="Business Continuity Management Program")
    scope_description: Mapped[Optional[str]] = mapped_column(Text)
    policy_statement: Mapped[Optional[str]] = mapped_column(Text)
    budget_allocated: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    status: Mapped[str] = mapped_column(String(20), default="draft")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BusinessProcess(Base):
    __tablename__ = "cos_business_processes"
    __table_args__ = (Index("ix_business_processes_client", "client_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    department: Mapped[Optional[str]] = mapped_column(String(255))
    criticality_tier: Mapped[Optional[str]] = mapped_column(String(50))
    rto: Mapped[Optional[str]] = mapped_column(String(20))
    rpo: Mapped[Optional[str]] = mapped_column(String(20))
    mtpd: Mapped[Optional[str]] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BusinessImpactAnalysis(Base):
    __tablename__ = "cos_business_impact_analyses"
    __table_args__ = (Index("ix_bias_client", "client_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    process_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_business_processes.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="draft")
    methodology: Mapped[Optional[str]] = mapped_column(Text)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class RecoveryObjective(Base):
    __tablename__ = "cos_recovery_objectives"
    __table_args__ = (Index("ix_recovery_objectives_bia", "bia_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    bia_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_business_impact_analyses.id"), nullable=False)
    activity: Mapped[str] = mapped_column(String(255), nullable=False)
    criticality: Mapped[Optional[str]] = mapped_column(String(50))
    rto: Mapped[Optional[str]] = mapped_column(String(20))
    rpo: Mapped[Optional[str]] = mapped_column(String(20))
    mtpd: Mapped[Optional[str]] = mapped_column(String(20))
    dependencies: Mapped[Optional[str]] = mapped_column(Text)
    resources: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class BcPlan(Base):
    __tablename__ = "cos_bc_plans"
    __table_args__ = (Index("ix_bc_plans_client", "client_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="draft")
    last_tested_date: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# 10. Notifications
# ──────────────────────────────────────────────────────────────────────────────


class NotificationSettings(Base):
    __tablename__ = "cos_notification_settings"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    client_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_clients.id"), unique=True, nullable=False)
    email_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    overdue_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    upcoming_review_days: Mapped[int] = mapped_column(Integer, default=7)
    daily_digest_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    weekly_digest_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_control_reviews: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_policy_renewals: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_evidence_expiration: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_risk_reviews: Mapped[bool] = mapped_column(Boolean, default=True)
    webhook_url: Mapped[str] = mapped_column(String(1024), default="")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NotificationLog(Base):
    __tablename__ = "cos_notification_log"
    __table_args__ = (
        Index("ix_notification_log_client", "client_id"),
        Index("ix_notification_log_sent_at", "sent_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    organization_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("cos_organizations.id"), nullable=False)
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID(), ForeignKey("cos_clients.id"))
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID())
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    channel: Mapped[str] = mapped_column(String(20), default="email")
    title: Mapped[Optional[str]] = mapped_column(String(255))
    message: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="sent")
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSONType())
    related_entity_type: Mapped[Optional[str]] = mapped_column(String(50))
    related_entity_id: Mapped[Optional[str]] = mapped_column(String(128))
    sent_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
