"""
Id and timestamp helpers shared by the routers.
"""

from __future__ import annotations

import time
import uuid


def new_id() -> str:
    """Return a fresh server-side identifier."""
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)
