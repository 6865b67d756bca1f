"""
ComplianceOS - FastAPI Application.

Entry point for the API server.
Run: uvicorn complianceos.main:app --host 0.0.0.0 --port 8000 --reload

The notification scheduler runs separately:
    python -m complianceos.scheduler_main
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text as sa_text

from complianceos.config import settings
from complianceos.db.engine import close_db, get_engine, init_db
from complianceos.middleware.error_handler import ErrorHandlerMiddleware
from complianceos.middleware.rate_limit import RateLimitMiddleware
from complianceos.middleware.request_context import RequestContextMiddleware
from complianceos.middleware.security_headers import SecurityHeadersMiddleware
from complianceos.middleware.tenant import TenantMiddleware
from complianceos.services.cache import close_redis, get_redis
from complianceos.services.exceptions import DomainError

from complianceos.auth.router import router as auth_router
from complianceos.api.routers.users import router as users_router
from complianceos.api.routers.invitations import router as invitations_router
from complianceos.api.routers.clients import router as clients_router
from complianceos.api.routers.frameworks import router as frameworks_router
from complianceos.api.routers.evidence import router as evidence_router
from complianceos.api.routers.vendors import router as vendors_router
from complianceos.api.routers.dpa_templates import router as dpa_templates_router
from complianceos.api.routers.risks import router as risks_router
from complianceos.api.routers.policies import router as policies_router
from complianceos.api.routers.gap_analysis import router as gap_analysis_router
from complianceos.api.routers.tasks import router as tasks_router
from complianceos.api.routers.business_continuity import router as bcp_router
from complianceos.api.routers.notifications import router as notifications_router
from complianceos.api.routers.reports import router as reports_router
from complianceos.api.routers.audit_trail import router as audit_trail_router

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if settings.environment == "production"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level.upper())
    ),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

SERVICE_NAME = "complianceos"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("complianceos_starting", version=settings.app_version, environment=settings.environment)
    await init_db()
    yield
    await close_redis()
    await close_db()
    logger.info("complianceos_shutdown")


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Business-rule violations carry their own status and message."""
    logger.info(
        "domain_error",
        error=type(exc).__name__,
        status=exc.status_code,
        detail=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="ComplianceOS",
        description=(
            "# ComplianceOS - Governance, Risk & Compliance API\n\n"
            "Multi-tenant backend for compliance consultancies managing client "
            "workspaces: frameworks and controls, evidence, vendors and DPAs, "
            "risk register, policies and attestations, gap analysis, business "
            "continuity, notifications and reports.\n\n"
            "## Authentication\n"
            "All endpoints (except /health, /ready, /auth/login, /auth/register "
            "and invitation acceptance) require `Authorization: Bearer <JWT>`.\n"
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_tags=[
            {"name": "health", "description": "Liveness and readiness probes"},
            {"name": "auth", "description": "Authentication (register, login, token)"},
            {"name": "users", "description": "Organization users and workspace memberships"},
            {"name": "invitations", "description": "Organization invitations"},
            {"name": "clients", "description": "Client workspaces, scores and controls"},
            {"name": "frameworks", "description": "Framework catalog and custom frameworks"},
            {"name": "evidence", "description": "Evidence requests, files and review workflow"},
            {"name": "vendors", "description": "Vendor onboarding, data mapping and DPAs"},
            {"name": "dpa-templates", "description": "Organization DPA templates"},
            {"name": "risks", "description": "Threats, vulnerabilities, assessments, treatments"},
            {"name": "policies", "description": "Policies, versions, assignments, attestations"},
            {"name": "gap-analysis", "description": "Gap assessments and prioritisation"},
            {"name": "tasks", "description": "Remediation tasks"},
            {"name": "business-continuity", "description": "BCP program, BIAs and plans"},
            {"name": "notifications", "description": "Notification settings and digests"},
            {"name": "reports", "description": "Compliance reports (JSON and CSV)"},
            {"name": "audit", "description": "Audit trail with hash chain integrity"},
        ],
    )

    app.add_exception_handler(DomainError, domain_error_handler)

    # ── Middleware (last added = outermost = first to process) ──
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(TenantMiddleware)

    # CORS outermost so OPTIONS preflight is answered before auth
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routes ────────────────────────────────────────────────────────
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(invitations_router)
    app.include_router(frameworks_router)
    app.include_router(dpa_templates_router)
    app.include_router(clients_router)
    app.include_router(evidence_router)
    app.include_router(vendors_router)
    app.include_router(risks_router)
    app.include_router(policies_router)
    app.include_router(gap_analysis_router)
    app.include_router(tasks_router)
    app.include_router(bcp_router)
    app.include_router(notifications_router)
    app.include_router(reports_router)
    app.include_router(audit_trail_router)

    @app.get("/health", tags=["health"])
    async def health():
        """Liveness probe. Does not check dependencies; see /ready."""
        return {
            "status": "ok",
            "version": settings.app_version,
            "service": SERVICE_NAME,
        }

    @app.get("/ready", tags=["health"])
    async def readiness():
        """
        Readiness probe.

        The database is a hard dependency (503 when down); Redis is soft
        (status "degraded" when configured but unreachable).
        """
        checks: dict = {"api": "ok"}
        degraded_services: list[str] = []

        try:
            async with get_engine().connect() as conn:
                await asyncio.wait_for(
                    conn.execute(sa_text("SELECT 1")),
                    timeout=settings.health_check_timeout_seconds,
                )
            checks["database"] = "ok"
        except Exception as exc:
            logger.warning("readiness_database_unavailable", error=str(exc))
            checks["database"] = "unavailable"

        try:
            r = await get_redis()
            if r:
                await asyncio.wait_for(r.ping(), timeout=2)
                checks["redis"] = "ok"
            else:
                checks["redis"] = "not_configured"
        except Exception as exc:
            logger.warning("readiness_redis_unavailable", error=str(exc))
            checks["redis"] = "unavailable"
            degraded_services.append("redis")

        db_ok = checks["database"] == "ok"
        status = "ok" if db_ok and not degraded_services else "degraded" if db_ok else "unavailable"

        return JSONResponse(
            status_code=200 if db_ok else 503,
            content={
                "status": status,
                "version": settings.app_version,
                "service": SERVICE_NAME,
                "environment": settings.environment,
                "checks": checks,
                "degraded_services": degraded_services,
                "timestamp": datetime.utcnow().isoformat(),
            },
        )

    return app


# Application instance
app = create_app()
