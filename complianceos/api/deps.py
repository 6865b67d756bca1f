"""
FastAPI dependencies for API routes.

Re-exports auth and workspace dependencies for convenience.
"""

from complianceos.auth.dependencies import get_current_user, get_db, get_organization_id, get_user_id
from complianceos.auth.workspace import WorkspaceAccess, get_workspace, require_client_role

__all__ = [
    "get_db",
    "get_organization_id",
    "get_user_id",
    "get_current_user",
    "get_workspace",
    "require_client_role",
    "WorkspaceAccess",
]
