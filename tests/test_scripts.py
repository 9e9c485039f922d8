from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from models.models import VerificationSession
from scripts import cleanup_worker, set_webhook

START = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def _session(token, expires_at):
    return VerificationSession(
        session_token=token,
        email=f"{token}@b.uz",
        phone_number="+998901112233",
        code="123456",
        created_at=expires_at - timedelta(seconds=180),
        expires_at=expires_at,
    )


def test_cleanup_removes_only_sessions_past_retention(db, session_factory, monkeypatch):
    db.add_all(
        [
            _session("old", START - timedelta(hours=30)),
            _session("recent", START - timedelta(hours=2)),
            _session("live", START + timedelta(minutes=2)),
        ]
    )
    db.commit()
    monkeypatch.setattr(cleanup_worker, "SessionLocal", session_factory)

    deleted = cleanup_worker.cleanup_expired_sessions(retention_hours=24, now=START)

    assert deleted == 1
    db.expire_all()
    assert sorted(db.scalars(select(VerificationSession.session_token))) == ["live", "recent"]


def test_set_webhook_registers_public_url(monkeypatch):
    from core.config import settings

    monkeypatch.setattr(settings, "base_url", "https://otp.example.uz/")
    adapter = MagicMock()
    adapter.set_webhook.return_value = {"ok": True, "description": "Webhook was set"}

    result = set_webhook.register_webhook(adapter)

    assert result["ok"] is True
    adapter.set_webhook.assert_called_once_with(
        "https://otp.example.uz/webhook/telegram",
        "test-webhook-secret",
    )


def test_set_webhook_reports_rejection(monkeypatch):
    from core.config import settings

    monkeypatch.setattr(settings, "base_url", "https://otp.example.uz")
    adapter = MagicMock()
    adapter.set_webhook.return_value = {"ok": False, "description": "bad url"}

    with pytest.raises(RuntimeError):
        set_webhook.register_webhook(adapter)
