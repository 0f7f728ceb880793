"""Millisecond clock seam. Tests pass a fake; production uses wall time."""

from __future__ import annotations
import time
from typing import Callable

Clock = Callable[[], int]


def system_clock() -> int:
    """Current epoch time in milliseconds."""
    return int(time.time() * 1000)
