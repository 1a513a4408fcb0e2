"""Unit tests for recurrence rule expansion."""

import logging
from datetime import date
from typing import Any, Callable

import pytest

from lexagenda.config.settings import SchedulingSettings
from lexagenda.recurrence.expander import RecurrenceExpander, describe_rule
from lexagenda.store.models import Frequency, RecurrenceRule

RuleFactory = Callable[..., RecurrenceRule]


@pytest.fixture
def expander() -> RecurrenceExpander:
    return RecurrenceExpander(SchedulingSettings(max_expansion_days=3660))


def _dates(expander: RecurrenceExpander, rule: RecurrenceRule, start: date, end: date) -> list[date]:
    return expander.expand(rule, start, end).dates()


class TestDailyExpansion:
    """Test daily and business-day rules."""

    def test_expand_when_daily_then_every_day_in_window(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule()

        assert _dates(expander, rule, date(2024, 1, 8), date(2024, 1, 10)) == [
            date(2024, 1, 8),
            date(2024, 1, 9),
            date(2024, 1, 10),
        ]

    def test_expand_when_business_days_only_then_weekend_skipped(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(anchor_date=date(2024, 1, 5), business_days_only=True)

        assert _dates(expander, rule, date(2024, 1, 5), date(2024, 1, 9)) == [
            date(2024, 1, 5),
            date(2024, 1, 8),
            date(2024, 1, 9),
        ]

    def test_expand_when_window_before_anchor_then_starts_at_anchor(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(anchor_date=date(2024, 1, 9))

        assert _dates(expander, rule, date(2024, 1, 1), date(2024, 1, 10)) == [
            date(2024, 1, 9),
            date(2024, 1, 10),
        ]


class TestWeeklyExpansion:
    """Test weekly rules with Sunday-based weekday numbers."""

    def test_expand_when_weekdays_given_then_only_those_days(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(frequency=Frequency.WEEKLY, weekdays=[5, 1])

        assert _dates(expander, rule, date(2024, 1, 1), date(2024, 1, 14)) == [
            date(2024, 1, 1),
            date(2024, 1, 5),
            date(2024, 1, 8),
            date(2024, 1, 12),
        ]

    def test_expand_when_no_weekdays_then_anchor_weekday_used(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(frequency=Frequency.WEEKLY, anchor_date=date(2024, 1, 3))

        assert _dates(expander, rule, date(2024, 1, 1), date(2024, 1, 20)) == [
            date(2024, 1, 3),
            date(2024, 1, 10),
            date(2024, 1, 17),
        ]

    def test_expand_when_interval_two_then_every_other_week(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(frequency=Frequency.WEEKLY, weekdays=[1], interval=2)

        assert _dates(expander, rule, date(2024, 1, 1), date(2024, 1, 31)) == [
            date(2024, 1, 1),
            date(2024, 1, 15),
            date(2024, 1, 29),
        ]


class TestMonthlyAndYearlyExpansion:
    """Test month-day clamping and the last-day marker."""

    def test_expand_when_day_31_then_clamped_to_month_end(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(
            frequency=Frequency.MONTHLY, month_day=31, anchor_date=date(2024, 1, 31)
        )

        assert _dates(expander, rule, date(2024, 1, 1), date(2024, 4, 30)) == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
        ]

    def test_expand_when_last_day_marker_then_last_day_of_each_month(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(
            frequency=Frequency.MONTHLY, month_day=99, anchor_date=date(2024, 1, 15)
        )

        assert _dates(expander, rule, date(2024, 1, 1), date(2024, 3, 31)) == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
        ]

    def test_expand_when_yearly_feb_29_then_clamped_in_common_years(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(frequency=Frequency.YEARLY, month=2, month_day=29)

        assert _dates(expander, rule, date(2024, 1, 1), date(2026, 12, 31)) == [
            date(2024, 2, 29),
            date(2025, 2, 28),
            date(2026, 2, 28),
        ]


class TestExpansionBounds:
    """Test exclusions, end conditions and projection limits."""

    def test_expand_when_date_excluded_then_skipped(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(exclusions={date(2024, 1, 2)})

        assert _dates(expander, rule, date(2024, 1, 1), date(2024, 1, 3)) == [
            date(2024, 1, 1),
            date(2024, 1, 3),
        ]

    def test_expand_when_max_occurrences_then_counted_from_anchor(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(max_occurrences=3)

        assert _dates(expander, rule, date(2024, 1, 2), date(2024, 1, 10)) == [
            date(2024, 1, 2),
            date(2024, 1, 3),
        ]

    def test_expand_when_end_date_then_stops_inclusive(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(end_date=date(2024, 1, 3))

        assert _dates(expander, rule, date(2024, 1, 1), date(2024, 1, 10))[-1] == date(2024, 1, 3)

    def test_expand_when_rule_inactive_then_empty(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(active=False)

        assert _dates(expander, rule, date(2024, 1, 1), date(2024, 1, 10)) == []

    def test_expand_when_window_too_long_then_truncated(self, make_rule: RuleFactory) -> None:
        expander = RecurrenceExpander(SchedulingSettings(max_expansion_days=5))

        dates = _dates(expander, make_rule(), date(2024, 1, 1), date(2024, 1, 31))

        assert dates[-1] == date(2024, 1, 6)

    def test_expand_when_cap_reached_then_warns_and_stops(
        self, make_rule: RuleFactory, caplog: Any
    ) -> None:
        expander = RecurrenceExpander(SchedulingSettings(max_occurrences_per_rule=2))

        with caplog.at_level(logging.WARNING, logger="lexagenda.recurrence.expander"):
            dates = _dates(expander, make_rule(), date(2024, 1, 1), date(2024, 1, 31))

        assert len(dates) == 2
        assert "occurrence cap" in caplog.text

    def test_expand_when_iterated_twice_then_same_sequence(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        sequence = expander.expand(make_rule(), date(2024, 1, 1), date(2024, 1, 5))

        assert list(sequence) == list(sequence)
        assert len(list(sequence)) == 5

    def test_expand_all_when_several_rules_then_sorted_by_day_then_rule(
        self, expander: RecurrenceExpander, make_rule: RuleFactory
    ) -> None:
        first = make_rule(id="bbbb")
        second = make_rule(id="aaaa")

        refs = expander.expand_all([first, second], date(2024, 1, 1), date(2024, 1, 2))

        assert [(ref.day.day, ref.recurrence_id) for ref in refs] == [
            (1, "aaaa"),
            (1, "bbbb"),
            (2, "aaaa"),
            (2, "bbbb"),
        ]


class TestDescribeRule:
    """Test human readable rule summaries."""

    def test_describe_rule_when_weekly_then_lists_day_names(self, make_rule: RuleFactory) -> None:
        rule = make_rule(frequency=Frequency.WEEKLY, weekdays=[1, 5])

        assert describe_rule(rule) == "Every week: Monday, Friday at 09:00"

    def test_describe_rule_when_last_day_then_mentions_last_day(
        self, make_rule: RuleFactory
    ) -> None:
        rule = make_rule(frequency=Frequency.MONTHLY, month_day=99, max_occurrences=6)

        assert describe_rule(rule) == "Every month, last day at 09:00 (6x)"
