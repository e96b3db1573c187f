"""Serialization utilities.

Centralizes common serialization patterns used across the codebase:
- Timezone-aware UTC timestamps
- Compact JSON for log fields and tool results
"""

import json
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Return current UTC time as ISO format string."""
    return utc_now().isoformat()


def to_json(value: Any) -> str:
    """Serialize to compact JSON.

    Datetimes are rendered as ISO strings; anything else json cannot
    handle falls back to ``str()``.
    """
    def _default(obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)

    return json.dumps(value, default=_default, separators=(",", ":"))
