# mpbot/utils/timeutil.py
# All timestamps inside mpbot are integer epoch milliseconds (UTC).
import logging
import math
import time
from datetime import datetime, timezone
from typing import Any, Optional

log = logging.getLogger("mpbot.time")


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_epoch_ms(value: Any) -> Optional[int]:
    """Coerce epoch ms or an ISO-8601 string to epoch ms.

    Returns None for empty or unparseable input; callers treat None as
    "never expires".
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    s = str(value).strip()
    if not s:
        return None
    if s.lstrip("-").isdigit():
        return int(s)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        log.warning("unparseable timestamp %r treated as empty", value)
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def to_iso(ms: Optional[int]) -> Optional[str]:
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat(timespec="seconds")
