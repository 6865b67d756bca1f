"""
ComplianceOS - Governance, Risk & Compliance platform backend.

Architecture:
    complianceos/
    ├── api/             # FastAPI routers (HTTP layer)
    ├── auth/            # JWT authentication, org RBAC, workspace roles
    ├── db/              # SQLAlchemy models, engine, repositories
    ├── middleware/      # Tenant isolation, rate limiting, error handling
    ├── notifications/   # Channel router: email (SMTP) and webhook delivery
    ├── schemas/         # Pydantic request/response models
    └── services/        # Business logic (scoring, workflows, digests, reports)

Module Boundaries:
    - An organization (consultancy) owns client workspaces
    - Every workspace query is scoped by client_id in the repository layer
    - Org admins act as owners of every workspace; others need a membership
    - Every domain mutation is written to the hash-chained audit trail
"""

__version__ = "1.0.0"
