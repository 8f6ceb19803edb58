"""Type aliases used across the Newsreel platform."""

from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Callable

Clock = Callable[[], datetime]
Sleeper = Callable[[float], Awaitable[None]]
