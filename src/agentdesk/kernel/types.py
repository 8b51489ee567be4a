"""Shared primitives used across the orchestration core."""

from __future__ import annotations

import time
import uuid
from typing import Any, Callable, Dict

UIEvent = Dict[str, Any]
EventHandler = Callable[[UIEvent], None]
EventSink = Callable[[str, Dict[str, Any]], None]


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id(prefix: str) -> str:
    return "{0}_{1}".format(prefix, uuid.uuid4().hex)
