"""HTTP translation of prospecting error codes."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from leadsniper.services.prospecting.errors import ProspectingError

logger = logging.getLogger(__name__)


def map_error_code(code: str | None) -> int:
    """Error codes carry their HTTP status as a numeric prefix (``404_LEAD_NOT_FOUND``)."""
    prefix = (code or "").split("_", 1)[0]
    if prefix.isdigit() and 400 <= int(prefix) <= 599:
        return int(prefix)
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def require_owner(x_owner_id: str | None = Header(default=None)) -> str:
    """Owner id injected by the upstream gateway."""
    owner_id = (x_owner_id or "").strip()
    if not owner_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Owner-Id header.")
    return owner_id


async def prospecting_error_handler(request: Request, exc: ProspectingError) -> JSONResponse:
    status_code = map_error_code(exc.code)
    log = logger.error if status_code >= 500 else logger.info
    log("api.prospecting_error", extra={"path": request.url.path, "code": exc.code})
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "detail": str(exc), "code": exc.code},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("api.unhandled_error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "detail": "Internal server error.", "code": "500_INTERNAL"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ProspectingError, prospecting_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
