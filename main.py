import asyncio
import logging
import time
from fastapi import FastAPI, Request
from dotenv import load_dotenv
from endpoints.webhook import router as webhook_router
from endpoints.otp import router as otp_router
from core.http_client import init_async_client, close_async_client
from core.config import settings
from core.exception_handlers import register_exception_handlers
from core.logging import (
    clear_trace_context,
    http_request_entry,
    parse_cloud_trace_header,
    set_trace_context,
    setup_logging,
)
from scripts.cleanup_worker import cleanup_expired_sessions

load_dotenv()
setup_logging(settings.log_level, settings.gcp_project_id)
app = FastAPI()

app.include_router(webhook_router)
app.include_router(otp_router)
register_exception_handlers(app)

http_logger = logging.getLogger("http.request")
cleanup_task: asyncio.Task | None = None

async def _run_periodic_cleanup() -> None:
    while True:
        await asyncio.sleep(60 * 60)
        try:
            deleted = await asyncio.to_thread(cleanup_expired_sessions)
            logging.getLogger(__name__).info(
                "Expired verification sessions removed",
                extra={"deleted": deleted},
            )
        except Exception:
            logging.getLogger(__name__).exception("Periodic session cleanup failed")

@app.middleware("http")
async def trace_context_middleware(request: Request, call_next):
    set_trace_context(*parse_cloud_trace_header(request.headers.get("X-Cloud-Trace-Context")))
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        entry = http_request_entry(
            request,
            status=response.status_code if response is not None else 500,
            response_size=response.headers.get("content-length") if response is not None else None,
            latency=time.perf_counter() - start,
        )
        http_logger.info("HTTP request", extra={"httpRequest": entry})
        clear_trace_context()

@app.on_event("startup")
async def startup() -> None:
    settings.validate_runtime()
    init_async_client()
    global cleanup_task
    cleanup_task = asyncio.create_task(_run_periodic_cleanup())

@app.on_event("shutdown")
async def shutdown() -> None:
    global cleanup_task
    if cleanup_task:
        cleanup_task.cancel()
        cleanup_task = None
    await close_async_client()

@app.get("/healthz")
def root():
    return {"message": "OTP verification service running"}
