from dataclasses import dataclass
from datetime import datetime, timedelta

# (minimum, maximum) per field, in cron order
FIELD_RANGES = ((0, 59), (0, 23), (1, 31), (1, 12), (0, 7))
MAX_SEARCH_DAYS = 366 * 5


def _parse_field(text: str, minimum: int, maximum: int) -> frozenset[int]:
    values: set[int] = set()
    for part in text.split(","):
        if not part:
            raise ValueError(f"empty cron field part in {text!r}")
        step = 1
        if "/" in part:
            part, step_text = part.split("/", 1)
            if not step_text.isdigit() or int(step_text) < 1:
                raise ValueError(f"invalid cron step {step_text!r}")
            step = int(step_text)
        if part == "*":
            start, end = minimum, maximum
        elif "-" in part:
            start_text, end_text = part.split("-", 1)
            if not start_text.isdigit() or not end_text.isdigit():
                raise ValueError(f"invalid cron range {part!r}")
            start, end = int(start_text), int(end_text)
        elif part.isdigit():
            start = int(part)
            end = maximum if step > 1 else start
        else:
            raise ValueError(f"invalid cron value {part!r}")
        if start < minimum or end > maximum or start > end:
            raise ValueError(f"cron value {part!r} outside {minimum}-{maximum}")
        values.update(range(start, end + 1, step))
    return frozenset(values)


@dataclass(frozen=True)
class CronExpression:
    """Standard five-field cron expression (minute hour day month weekday)."""

    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]
    day_restricted: bool
    weekday_restricted: bool

    @classmethod
    def parse(cls, expression: str) -> "CronExpression":
        fields = expression.split()
        if len(fields) != 5:
            raise ValueError(f"cron expression needs 5 fields, got {len(fields)}: {expression!r}")
        parsed = [_parse_field(text, low, high) for text, (low, high) in zip(fields, FIELD_RANGES)]
        weekdays = frozenset(0 if day == 7 else day for day in parsed[4])
        return cls(
            expression=expression,
            minutes=parsed[0],
            hours=parsed[1],
            days=parsed[2],
            months=parsed[3],
            weekdays=weekdays,
            day_restricted=not fields[2].startswith("*"),
            weekday_restricted=not fields[4].startswith("*"),
        )

    def _day_matches(self, moment: datetime) -> bool:
        day_ok = moment.day in self.days
        # cron counts weekdays from Sunday
        weekday_ok = (moment.weekday() + 1) % 7 in self.weekdays
        if self.day_restricted and self.weekday_restricted:
            return day_ok or weekday_ok
        return day_ok and weekday_ok

    def next_after(self, moment: datetime) -> datetime:
        """Return the first matching minute strictly after ``moment``."""
        candidate = moment.replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = moment + timedelta(days=MAX_SEARCH_DAYS)
        while candidate <= limit:
            if candidate.month not in self.months:
                year = candidate.year + (candidate.month // 12)
                month = candidate.month % 12 + 1
                candidate = candidate.replace(year=year, month=month, day=1, hour=0, minute=0)
                continue
            if not self._day_matches(candidate):
                candidate = candidate.replace(hour=0, minute=0) + timedelta(days=1)
                continue
            if candidate.hour not in self.hours:
                candidate = candidate.replace(minute=0) + timedelta(hours=1)
                continue
            if candidate.minute not in self.minutes:
                candidate += timedelta(minutes=1)
                continue
            return candidate
        raise ValueError(f"cron expression {self.expression!r} never fires")
