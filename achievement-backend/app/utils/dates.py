# app/utils/dates.py
from datetime import datetime, timezone

def utcnow() -> datetime:
    """Timezone-aware current time in UTC"""
    return datetime.now(timezone.utc)
