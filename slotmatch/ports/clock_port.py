"""Clock port — the only source of "now" for core modules.

Injected everywhere so the calculator and batch workers stay deterministic
under test.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class ClockPort(Protocol):
    def now(self) -> datetime: ...
