"""Recurrence rule expansion into virtual occurrences."""

import logging
from collections.abc import Iterator
from datetime import date, datetime, timedelta
from typing import Optional

from dateutil.rrule import DAILY, FR, MO, MONTHLY, SA, SU, TH, TU, WE, WEEKLY, YEARLY, rrule

from ..config.settings import SchedulingSettings
from ..store.models import LAST_DAY_OF_MONTH, Frequency, RecurrenceRule
from .identifiers import VirtualRef

logger = logging.getLogger(__name__)

_FREQUENCIES = {
    Frequency.DAILY: DAILY,
    Frequency.WEEKLY: WEEKLY,
    Frequency.MONTHLY: MONTHLY,
    Frequency.YEARLY: YEARLY,
}

# Rule weekdays count from Sunday=0
_WEEKDAYS = (SU, MO, TU, WE, TH, FR, SA)
_BUSINESS_DAYS = (MO, TU, WE, TH, FR)

_WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
_MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def _month_day_args(day: int) -> dict:
    """rrule arguments selecting ``day`` of the month, clamped to the month's end."""
    if day == LAST_DAY_OF_MONTH:
        return {"bymonthday": -1}
    if day <= 28:
        return {"bymonthday": day}
    # Latest existing day among 28..day, e.g. the 31st falls back to the 30th
    return {"bymonthday": tuple(range(28, day + 1)), "bysetpos": -1}


def build_rrule(rule: RecurrenceRule) -> rrule:
    """Translate a recurrence rule into a dateutil rrule anchored at its start date.

    Args:
        rule: Recurrence rule to translate

    Returns:
        rrule producing midnight datetimes, one per occurrence date
    """
    kwargs: dict = {
        "dtstart": datetime.combine(rule.anchor_date, datetime.min.time()),
        "interval": rule.interval,
        "wkst": SU,
    }

    if rule.frequency == Frequency.DAILY and rule.business_days_only:
        kwargs["byweekday"] = _BUSINESS_DAYS
    elif rule.frequency == Frequency.WEEKLY:
        weekdays = rule.weekdays or [(rule.anchor_date.weekday() + 1) % 7]
        kwargs["byweekday"] = tuple(_WEEKDAYS[day] for day in weekdays)
    elif rule.frequency == Frequency.MONTHLY:
        kwargs.update(_month_day_args(rule.month_day or rule.anchor_date.day))
    elif rule.frequency == Frequency.YEARLY:
        kwargs["bymonth"] = rule.month or rule.anchor_date.month
        kwargs.update(_month_day_args(rule.month_day or rule.anchor_date.day))

    if rule.end_date is not None:
        kwargs["until"] = datetime.combine(rule.end_date, datetime.max.time())
    if rule.max_occurrences is not None:
        kwargs["count"] = rule.max_occurrences

    return rrule(_FREQUENCIES[rule.frequency], **kwargs)


class OccurrenceSequence:
    """Lazy, restartable sequence of a rule's occurrences inside a window.

    Each iteration re-runs the expansion, so the sequence can be consumed
    any number of times.
    """

    def __init__(self, rule: RecurrenceRule, window_start: date, window_end: date, limit: int):
        self.rule = rule
        self.window_start = window_start
        self.window_end = window_end
        self.limit = limit

    def __iter__(self) -> Iterator[VirtualRef]:
        if not self.rule.active or self.window_end < self.window_start:
            return

        lower = datetime.combine(max(self.window_start, self.rule.anchor_date), datetime.min.time())
        yielded = 0
        for occurrence in build_rrule(self.rule).xafter(lower, inc=True):
            day = occurrence.date()
            if day > self.window_end:
                break
            if day in self.rule.exclusions:
                continue
            yield VirtualRef(recurrence_id=self.rule.id, day=day)
            yielded += 1
            if yielded >= self.limit:
                logger.warning(
                    f"Rule {self.rule.id} hit the {self.limit}-occurrence cap "
                    f"in window {self.window_start}..{self.window_end}"
                )
                break

    def dates(self) -> list[date]:
        """Get the occurrence dates as a list."""
        return [ref.day for ref in self]


class RecurrenceExpander:
    """Expands recurrence rules into virtual occurrences without touching storage."""

    def __init__(self, settings: Optional[SchedulingSettings] = None):
        """Initialize the expander with projection limits.

        Args:
            settings: Scheduling limits, defaults when omitted
        """
        self.settings = settings or SchedulingSettings()

    def expand(
        self, rule: RecurrenceRule, window_start: date, window_end: date
    ) -> OccurrenceSequence:
        """Expand a rule over an inclusive date window.

        Windows longer than ``max_expansion_days`` are truncated. Inactive
        rules and excluded dates produce nothing. Suppressing dates that
        already have a materialized row is left to the caller.

        Args:
            rule: Rule to expand
            window_start: First day of the window
            window_end: Last day of the window (inclusive)

        Returns:
            Restartable sequence of VirtualRef ascending by date
        """
        max_end = window_start + timedelta(days=self.settings.max_expansion_days)
        if window_end > max_end:
            logger.debug(f"Expansion window for rule {rule.id} truncated to {max_end}")
            window_end = max_end

        return OccurrenceSequence(
            rule, window_start, window_end, limit=self.settings.max_occurrences_per_rule
        )

    def expand_all(
        self, rules: list[RecurrenceRule], window_start: date, window_end: date
    ) -> list[VirtualRef]:
        """Expand several rules, ordered by date and then rule id."""
        refs = [ref for rule in rules for ref in self.expand(rule, window_start, window_end)]
        return sorted(refs, key=lambda ref: (ref.day, ref.recurrence_id))


def describe_rule(rule: RecurrenceRule) -> str:
    """Build a human readable summary such as ``Every week: Monday, Friday at 09:00``."""
    if rule.frequency == Frequency.DAILY:
        unit = "business day" if rule.business_days_only else "day"
        base = f"Every {unit}" if rule.interval == 1 else f"Every {rule.interval} {unit}s"
    elif rule.frequency == Frequency.WEEKLY:
        names = ", ".join(_WEEKDAY_NAMES[day] for day in rule.weekdays) or "no days selected"
        prefix = "Every week" if rule.interval == 1 else f"Every {rule.interval} weeks"
        base = f"{prefix}: {names}"
    elif rule.frequency == Frequency.MONTHLY:
        day_label = "last day" if rule.month_day == LAST_DAY_OF_MONTH else f"day {rule.month_day or 1}"
        prefix = "Every month" if rule.interval == 1 else f"Every {rule.interval} months"
        base = f"{prefix}, {day_label}"
    else:
        month_name = _MONTH_NAMES[(rule.month or 1) - 1]
        if rule.month_day == LAST_DAY_OF_MONTH:
            base = f"Every year, last day of {month_name}"
        else:
            base = f"Every year, {month_name} {rule.month_day or 1}"

    summary = f"{base} at {rule.default_time}"
    if rule.end_date is not None:
        summary += f" until {rule.end_date.isoformat()}"
    elif rule.max_occurrences:
        summary += f" ({rule.max_occurrences}x)"
    return summary
