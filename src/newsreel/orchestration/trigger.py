"""Pure time-of-day decision for the video selection trigger."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel


class TriggerDecision(BaseModel):
    model_config = {"frozen": True}

    utc_hour: int
    utc_minute: int
    target_hour: int
    target_minute: int
    is_odd_hour: bool
    is_minute_zero: bool
    should_trigger: bool


def evaluate_trigger(at: datetime, utc_offset_hours: int = 9) -> TriggerDecision:
    """Fire at minute zero of every odd hour in the target timezone.

    Naive datetimes are taken to be UTC.
    """
    utc = at.replace(tzinfo=timezone.utc) if at.tzinfo is None else at.astimezone(timezone.utc)
    target = utc + timedelta(hours=utc_offset_hours)
    is_odd_hour = target.hour % 2 == 1
    is_minute_zero = target.minute == 0
    return TriggerDecision(
        utc_hour=utc.hour,
        utc_minute=utc.minute,
        target_hour=target.hour,
        target_minute=target.minute,
        is_odd_hour=is_odd_hour,
        is_minute_zero=is_minute_zero,
        should_trigger=is_odd_hour and is_minute_zero,
    )
