"""Document ids and JSON encoding for stored documents."""
from __future__ import annotations

import json
import os
import threading
import time
from datetime import date, datetime
from decimal import Decimal
from typing import Any

_PROCESS_UNIQUE = os.urandom(5)
_counter_lock = threading.Lock()
_counter = int.from_bytes(os.urandom(3), "big")


def new_object_id() -> str:
    """
    ObjectId-style identifier: 24 hex chars, seconds timestamp first.

    Like MongoDB ObjectIds, ids created by one process sort in creation order
    unless the 3-byte counter wraps within one second. Cursor pagination on
    ``_id`` relies on that order.
    """
    global _counter
    with _counter_lock:
        _counter = (_counter + 1) % 0x1000000
        count = _counter
    timestamp = int(time.time()).to_bytes(4, "big")
    return (timestamp + _PROCESS_UNIQUE + count.to_bytes(3, "big")).hex()


def to_storage_value(value: Any) -> Any:
    """Convert a Python value to the representation stored in documents."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    from .documents import Document
    if isinstance(value, Document):
        return value.id
    if isinstance(value, dict):
        return {k: to_storage_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_storage_value(v) for v in value]
    return value


def dumps(doc: dict) -> str:
    return json.dumps(to_storage_value(doc), separators=(",", ":"))


def dumps_value(value: Any) -> str:
    return json.dumps(to_storage_value(value), separators=(",", ":"))


def loads(raw: str) -> dict:
    return json.loads(raw)
