"""
Envelope handlers for the OTP API.

Register these on a FastAPI app instance via `register_exception_handlers(app)`.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.errors import VerificationError

logger = logging.getLogger(__name__)

INTERNAL_ERROR = {
    "kind": "internal_error",
    "category": "transient",
    "action": "retry_later",
    "message": "Server xatoligi. Keyinroq urinib ko'ring.",
}


async def verification_error_handler(request: Request, exc: VerificationError):
    """Business failures are reported with HTTP 200 and ``success: false``."""
    logger.info(
        "Verification request rejected",
        extra={"path": request.url.path, "kind": exc.kind, "category": exc.category.value},
    )
    return JSONResponse(status_code=200, content={"success": False, "error": exc.to_dict()})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"success": False, "error": INTERNAL_ERROR})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(VerificationError, verification_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
