from datetime import datetime, timedelta
from typing import Optional

from app.config import COOLDOWN_DAYS
from app.utils.dates import as_utc

# Minimum gap between two verification SMS for the same phone
COOLDOWN_DURATION = timedelta(days=COOLDOWN_DAYS)

def can_send(last_sent_at: Optional[datetime], now: datetime, cooldown: timedelta = COOLDOWN_DURATION) -> bool:
    if last_sent_at is None:
        return True
    return as_utc(now) - as_utc(last_sent_at) > cooldown

def remaining_wait(last_sent_at: Optional[datetime], now: datetime, cooldown: timedelta = COOLDOWN_DURATION) -> timedelta:
    """Time left before another code may be sent; zero when sending is allowed."""
    if can_send(last_sent_at, now, cooldown):
        return timedelta(0)
    return as_utc(last_sent_at) + cooldown - as_utc(now)
