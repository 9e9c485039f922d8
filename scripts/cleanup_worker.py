import time
from datetime import datetime, timedelta, timezone
from typing import Optional
from core.config import settings
from core.database import SessionLocal
from services.session_store import SessionStore

def cleanup_expired_sessions(
    retention_hours: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """Delete sessions that expired more than ``retention_hours`` ago."""
    hours = settings.session_retention_hours if retention_hours is None else retention_hours
    before = (now or datetime.now(timezone.utc)) - timedelta(hours=hours)

    db = SessionLocal()
    try:
        return SessionStore().delete_expired(db, before)
    finally:
        db.close()


if __name__ == "__main__":
    print(f"[{datetime.now(timezone.utc).isoformat()}] session cleanup worker started")
    while True:
        deleted = cleanup_expired_sessions()
        if deleted > 0:
            print(
                f"[{datetime.now(timezone.utc).isoformat()}] deleted {deleted} expired session(s)"
            )
        time.sleep(60 * 10)
