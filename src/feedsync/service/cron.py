"""
Five-field cron schedules.

``minute hour day-of-month month day-of-week``, each field accepting ``*``,
``n``, ``a-b``, lists and ``/step``. Months and weekdays also accept
three-letter names (``JAN``, ``MON``). Day-of-week 7 is Sunday, like 0.

When both day fields are restricted a day matches if either one does
(classic cron behaviour).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MONTH_NAMES = {
    name: i
    for i, name in enumerate(
        ["JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"], start=1
    )
}
WEEKDAY_NAMES = {name: i for i, name in enumerate(["SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"])}

# Search horizon; covers Feb 29 schedules across a non-leap gap.
SEARCH_DAYS = 8 * 366


class CronError(ValueError):
    pass


def _value(token: str, names: dict[str, int], low: int, high: int, field: str) -> int:
    upper = token.upper()
    if upper in names:
        return names[upper]
    if not token.isdigit():
        raise CronError(f"invalid {field} value {token!r}")
    value = int(token)
    if not low <= value <= high:
        raise CronError(f"{field} value {value} out of range {low}-{high}")
    return value


def parse_field(text: str, low: int, high: int, field: str, names: dict[str, int] | None = None) -> frozenset[int]:
    """Expand one cron field into the set of values it allows."""
    names = names or {}
    allowed: set[int] = set()
    for part in text.split(","):
        if not part:
            raise CronError(f"empty list entry in {field} field {text!r}")
        body, _, step_text = part.partition("/")
        step = 1
        if step_text:
            if not step_text.isdigit() or int(step_text) == 0:
                raise CronError(f"invalid step in {field} field {text!r}")
            step = int(step_text)

        if body == "*":
            start, end = low, high
        elif "-" in body:
            first, _, last = body.partition("-")
            start = _value(first, names, low, high, field)
            end = _value(last, names, low, high, field)
            if start > end:
                raise CronError(f"descending range in {field} field {text!r}")
        else:
            start = _value(body, names, low, high, field)
            end = high if step_text else start

        allowed.update(range(start, end + 1, step))
    return frozenset(allowed)


@dataclass(frozen=True)
class CronSchedule:
    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]  # 0=Sunday
    days_restricted: bool
    weekdays_restricted: bool

    @classmethod
    def parse(cls, expression: str) -> CronSchedule:
        fields = expression.split()
        if len(fields) != 5:
            raise CronError(f"expected 5 cron fields, got {len(fields)}: {expression!r}")
        minute, hour, day, month, weekday = fields
        weekdays = parse_field(weekday, 0, 7, "day-of-week", WEEKDAY_NAMES)
        if 7 in weekdays:
            weekdays = (weekdays - {7}) | {0}
        return cls(
            expression=expression,
            minutes=parse_field(minute, 0, 59, "minute"),
            hours=parse_field(hour, 0, 23, "hour"),
            days=parse_field(day, 1, 31, "day-of-month"),
            months=parse_field(month, 1, 12, "month", MONTH_NAMES),
            weekdays=weekdays,
            days_restricted=not day.startswith("*"),
            weekdays_restricted=not weekday.startswith("*"),
        )

    def day_matches(self, moment: datetime) -> bool:
        if moment.month not in self.months:
            return False
        by_day = moment.day in self.days
        by_weekday = (moment.weekday() + 1) % 7 in self.weekdays
        if self.days_restricted and self.weekdays_restricted:
            return by_day or by_weekday
        return by_day and by_weekday

    def matches(self, moment: datetime) -> bool:
        return self.day_matches(moment) and moment.hour in self.hours and moment.minute in self.minutes

    def next_after(self, now: datetime, timezone: str = "UTC") -> datetime:
        """
        First matching minute strictly after ``now``, in ``timezone``.

        Raises:
            CronError: If nothing matches within the search horizon (e.g. ``0 0 31 2 *``)
        """
        tz = load_timezone(timezone)
        local = now.replace(tzinfo=tz) if now.tzinfo is None else now.astimezone(tz)
        candidate = local.replace(second=0, microsecond=0) + timedelta(minutes=1)
        horizon = candidate + timedelta(days=SEARCH_DAYS)

        while candidate < horizon:
            if not self.day_matches(candidate):
                candidate = (candidate + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if candidate.hour not in self.hours:
                candidate = (candidate + timedelta(hours=1)).replace(minute=0)
                continue
            if candidate.minute not in self.minutes:
                candidate += timedelta(minutes=1)
                continue
            return candidate
        raise CronError(f"cron expression {self.expression!r} never fires")


def load_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise CronError(f"unknown timezone {name!r}") from e


def validate(expression: str, timezone: str = "UTC") -> CronSchedule:
    """Parse ``expression`` and confirm it fires at least once."""
    schedule = CronSchedule.parse(expression)
    schedule.next_after(datetime.now(load_timezone(timezone)), timezone)
    return schedule
