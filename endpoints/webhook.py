import hmac
import json
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from sqlalchemy.orm import Session
from adapters.registry import ADAPTERS
from core.config import settings
from core.database import get_db
from core.rate_limit import SlidingWindowLimiter
from dependencies.services import get_webhook_service
from services.webhook_service import WebhookService

router = APIRouter()
logger = logging.getLogger(__name__)

# Settings are read on every hit so tests and reloads see current values.
chat_limiter = SlidingWindowLimiter(
    window=lambda: settings.rate_limit_window_seconds,
    limit=lambda: settings.rate_limit_max,
)


def verify_telegram_secret(
    secret_token: Optional[str] = Header(None, alias="X-Telegram-Bot-Api-Secret-Token"),
) -> None:
    expected = settings.telegram_webhook_secret
    if not expected:
        logger.error("Telegram webhook secret not configured")
        raise HTTPException(status_code=500, detail="Telegram webhook secret not configured")
    if not secret_token or not hmac.compare_digest(secret_token, expected):
        logger.warning("Telegram webhook secret mismatch")
        raise HTTPException(status_code=401, detail="Invalid Telegram webhook secret")


@router.post("/webhook/telegram", dependencies=[Depends(verify_telegram_secret)])
async def telegram_webhook(
    request: Request,
    db: Session = Depends(get_db),
    webhook_service: WebhookService = Depends(get_webhook_service),
):
    body = await request.body()
    try:
        update = json.loads(body)
    except json.JSONDecodeError:
        logger.warning("Telegram update is not valid JSON", extra={"body_len": len(body)})
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(update, dict):
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    try:
        message = ADAPTERS["telegram"].parse(update)
    except ValueError:
        logger.info("Telegram update ignored", extra={"update_id": update.get("update_id")})
        return Response(status_code=204)
    except (KeyError, TypeError):
        logger.warning("Telegram update has unexpected shape", extra={"update_id": update.get("update_id")})
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    if not chat_limiter.hit(message.chat_id):
        logger.warning("Telegram chat rate limited", extra={"chat_handle": message.chat_id})
        raise HTTPException(status_code=429, detail="Rate limit exceeded")

    try:
        await webhook_service.handle_incoming_message(db, message)
    except Exception:
        logger.exception(
            "Telegram update handling failed",
            extra={"chat_handle": message.chat_id, "message_id": message.message_id},
        )
        raise
    return {"status": "ok"}
