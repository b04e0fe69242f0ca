"""
Market Mage — TTL Configuration
────────────────────────────────
Single source of truth for all cache durations.
Organised by data kind — how fast the real world changes.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

# ── Remote shared cache TTL per data kind (minutes) ──────────

REMOTE_TTL_MINUTES = {
    # Fast-changing — prices move every tick
    "crypto_prices": 1,
    "stock_prices":  1,

    # Medium — market snapshot and headlines
    "market":        2,
    "news":          5,

    # Slow — aggregate counters
    "user_metrics":  10,
}

# ── Coordinator freshness windows (seconds) ──────────────────
# How long a category is served from the coordinator's own state
# before it goes back to the shared cache.
CATEGORY_DURATION = {
    "news":         2 * 3600,   # 2 hours
    "market":       5 * 60,     # 5 minutes
    "user_metrics": 10 * 60,    # 10 minutes
    # ai_insight: fresh until the next UTC midnight, see seconds_until_next_day
}

# ── Periodic refresh intervals (seconds, None = on demand) ───
REFRESH_INTERVAL = {
    "news":         2 * 3600,
    "market":       None,       # loaded lazily on first request
    "user_metrics": None,
    "ai_insight":   None,
}

# ── Local cache store (seconds) ──────────────────────────────
LOCAL_DEFAULT_TTL = 5 * 60     # 5 minutes
LOCAL_PRICE_TTL   = 2 * 60     # per-symbol quotes


def next_utc_midnight(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)


def seconds_until_next_day(now: Optional[datetime] = None) -> float:
    """Seconds until the next UTC midnight. AI insights expire there."""
    now = now or datetime.now(timezone.utc)
    return (next_utc_midnight(now) - now).total_seconds()
