"""
Logical id helpers.

Records reach the core with ids typed as int, as numeric strings, or
(for older documents) as floats. Everything is normalized to int here,
at the boundary, so the rest of the code compares plain integers.
"""

import threading
import time
from typing import Any, Optional

# Reserved for the synthesized account shown before a profile propagates.
VIRTUAL_ACCOUNT_ID = 0


def to_logical_id(value: Any) -> Optional[int]:
    """
    Normalize an external id representation to a logical id.

    Returns None for empty values and for anything that is not an integral
    number (booleans included).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return int(text)
        try:
            number = float(text)
        except ValueError:
            return None
        return int(number) if number.is_integer() else None
    return None


def to_logical_ids(values: Any) -> list[int]:
    """Normalize a sequence of ids, dropping invalid entries and duplicates (order kept)."""
    if not values:
        return []
    result: list[int] = []
    seen: set[int] = set()
    for value in values:
        logical_id = to_logical_id(value)
        if logical_id is None or logical_id in seen:
            continue
        seen.add(logical_id)
        result.append(logical_id)
    return result


class IdMinter:
    """
    Mints logical ids from the wall clock in milliseconds.

    Ids are strictly increasing within a process, so two creations in the
    same millisecond never collide, and never equal VIRTUAL_ACCOUNT_ID.
    """

    def __init__(self) -> None:
        self._last = VIRTUAL_ACCOUNT_ID
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            candidate = int(time.time() * 1000)
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return candidate
