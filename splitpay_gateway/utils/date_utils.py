"""Date and time helpers"""

import time
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def epoch_millis() -> int:
    """Milliseconds since the Unix epoch, used for fallback identifiers"""
    return int(time.time() * 1000)
