"""
Last-resort error handling.

DomainError and HTTPException are answered by FastAPI's exception handlers.
Anything that escapes them ends here:

- IntegrityError (a unique or foreign key constraint the service layer did
  not pre-check, e.g. two concurrent creates) → 409
- everything else → 500 with an error_id to quote to support

Responses never carry stack traces, SQL or exception messages.
"""

import traceback
import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.middleware.base import BaseHTTPMiddleware

from complianceos.config import settings

logger = structlog.get_logger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except IntegrityError as exc:
            logger.warning("integrity_conflict", path=request.url.path, error=str(exc.orig))
            return JSONResponse(
                status_code=409,
                content={"detail": "The change conflicts with existing data"},
            )
        except Exception as exc:
            error_id = uuid.uuid4().hex
            logger.error(
                "unhandled_exception",
                error_id=error_id,
                path=request.url.path,
                method=request.method,
                error=str(exc),
                traceback=traceback.format_exc(),
            )
            body = {
                "detail": "An internal error occurred. Please try again later.",
                "error_id": error_id,
            }
            if settings.debug:
                body["error_type"] = type(exc).__name__
            return JSONResponse(status_code=500, content=body)
