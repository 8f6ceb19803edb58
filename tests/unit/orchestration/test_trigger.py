"""Unit tests for the selection trigger decision."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from newsreel.orchestration.trigger import evaluate_trigger


def utc(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 1, hour, minute, tzinfo=timezone.utc)


class TestEvaluateTrigger:
    def test_odd_target_hour_on_the_hour_triggers(self):
        decision = evaluate_trigger(utc(16, 0))
        assert decision.target_hour == 1
        assert decision.target_minute == 0
        assert decision.is_odd_hour and decision.is_minute_zero
        assert decision.should_trigger is True

    def test_even_target_hour_does_not_trigger(self):
        decision = evaluate_trigger(utc(17, 0))
        assert decision.target_hour == 2
        assert decision.should_trigger is False

    def test_half_past_does_not_trigger(self):
        decision = evaluate_trigger(utc(16, 30))
        assert decision.target_minute == 30
        assert decision.is_odd_hour is True
        assert decision.should_trigger is False

    def test_reports_utc_fields(self):
        decision = evaluate_trigger(utc(3, 45))
        assert (decision.utc_hour, decision.utc_minute) == (3, 45)
        assert (decision.target_hour, decision.target_minute) == (12, 45)

    def test_naive_datetime_treated_as_utc(self):
        assert evaluate_trigger(datetime(2026, 3, 1, 16, 0)).should_trigger is True

    def test_aware_non_utc_input_is_converted(self):
        jst = timezone(timedelta(hours=9))
        decision = evaluate_trigger(datetime(2026, 3, 2, 1, 0, tzinfo=jst))
        assert decision.utc_hour == 16
        assert decision.should_trigger is True

    @pytest.mark.parametrize("hour", range(24))
    def test_matches_definition_for_every_hour(self, hour):
        for minute in (0, 1, 59):
            decision = evaluate_trigger(utc(hour, minute))
            expected = ((hour + 9) % 24) % 2 == 1 and minute == 0
            assert decision.should_trigger is expected
