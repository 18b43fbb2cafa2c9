"""UTC clock helpers shared by models, state modules and snapshots.

ORM columns store **naive** UTC datetimes; display payloads use ISO strings
with a ``Z`` suffix or unix seconds.
"""

import time
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Return the current UTC time as a naive (tzinfo=None) datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def unix_now() -> int:
    """Current time as whole unix seconds."""
    return int(time.time())


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None).isoformat() + "Z"
