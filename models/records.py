"""Domain models shared across services."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass(slots=True)
class SensorSample:
    """A reading as submitted by a device, before the store assigns an id."""

    device_id: str
    temperature: Any
    humidity: Any
    timestamp: Optional[datetime] = None


def is_finite_number(value: Any) -> bool:
    """True for real ints/floats that are finite; bools and strings never count."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False
