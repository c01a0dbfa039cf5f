"""ID utilities."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime


def new_id() -> str:
    """Return a sortable record id.

    Ids are time-based for readability plus a short random suffix to avoid collisions,
    e.g. ``20250101T120000Z_1a2b3c4d``.
    """

    ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{ts}_{uuid.uuid4().hex[:8]}"
