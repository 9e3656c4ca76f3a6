"""Five-field cron expressions for repeatable jobs (UTC).

    minute hour day-of-month month day-of-week

Each field accepts ``*``, numbers, ranges (``1-5``), steps (``*/15``,
``10-40/10``) and comma lists. Day-of-week is 0-6 with 0 = Sunday (7 is
accepted as Sunday too). When both day fields are restricted, a day
matches if either does.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

# (low, high) per field
_BOUNDS = [(0, 59), (0, 23), (1, 31), (1, 12), (0, 7)]
_MAX_LOOKAHEAD_DAYS = 366 * 5


def _parse_field(text: str, low: int, high: int) -> frozenset[int]:
    values: set[int] = set()
    for part in text.split(","):
        if not part:
            raise ValueError(f"Empty cron list element in '{text}'")
        step = 1
        if "/" in part:
            part, step_text = part.split("/", 1)
            step = int(step_text)
            if step < 1:
                raise ValueError(f"Invalid cron step in '{text}'")
        if part == "*":
            start, end = low, high
        elif "-" in part:
            start_text, end_text = part.split("-", 1)
            start, end = int(start_text), int(end_text)
        else:
            start = int(part)
            end = high if step != 1 else start
        if start < low or end > high or start > end:
            raise ValueError(f"Cron value out of range in '{text}' ({low}-{high})")
        values.update(range(start, end + 1, step))
    return frozenset(values)


@dataclass(frozen=True)
class CronSchedule:
    """A parsed cron expression."""
    expression: str
    minutes: frozenset
    hours: frozenset
    days: frozenset
    months: frozenset
    weekdays: frozenset
    any_day: bool
    any_weekday: bool

    @classmethod
    def parse(cls, expression: str) -> "CronSchedule":
        fields = expression.split()
        if len(fields) != 5:
            raise ValueError(f"Cron expression must have 5 fields: '{expression}'")
        try:
            parsed = [_parse_field(f, lo, hi) for f, (lo, hi) in zip(fields, _BOUNDS)]
        except ValueError as e:
            raise ValueError(f"Invalid cron expression '{expression}': {e}") from e
        weekdays = frozenset(0 if d == 7 else d for d in parsed[4])
        return cls(
            expression=expression,
            minutes=parsed[0],
            hours=parsed[1],
            days=parsed[2],
            months=parsed[3],
            weekdays=weekdays,
            any_day=fields[2] == "*",
            any_weekday=fields[4] == "*",
        )

    def _day_matches(self, moment: datetime) -> bool:
        day_ok = moment.day in self.days
        # isoweekday: Monday=1 .. Sunday=7
        weekday_ok = (moment.isoweekday() % 7) in self.weekdays
        if self.any_day and self.any_weekday:
            return True
        if self.any_day:
            return weekday_ok
        if self.any_weekday:
            return day_ok
        return day_ok or weekday_ok

    def next_after(self, moment: datetime) -> datetime:
        """First fire time strictly after ``moment``."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        current = moment.astimezone(timezone.utc).replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = current + timedelta(days=_MAX_LOOKAHEAD_DAYS)

        while current < limit:
            if current.month not in self.months:
                year = current.year + (1 if current.month == 12 else 0)
                month = 1 if current.month == 12 else current.month + 1
                current = current.replace(year=year, month=month, day=1, hour=0, minute=0)
                continue
            if not self._day_matches(current):
                current = (current + timedelta(days=1)).replace(hour=0, minute=0)
                continue
            if current.hour not in self.hours:
                current = (current + timedelta(hours=1)).replace(minute=0)
                continue
            if current.minute not in self.minutes:
                current += timedelta(minutes=1)
                continue
            return current
        raise ValueError(f"Cron expression '{self.expression}' never fires")

    def next_after_ms(self, moment_ms: int) -> int:
        moment = datetime.fromtimestamp(moment_ms / 1000, tz=timezone.utc)
        return int(self.next_after(moment).timestamp() * 1000)
