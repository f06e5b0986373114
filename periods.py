import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"
_MONTH_RE = re.compile(MONTH_PATTERN)


@dataclass(frozen=True)
class Month:
    """A calendar month, rendered as ``YYYY-MM``."""

    year: int
    month: int

    @property
    def slug(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        if self.month == 12:
            return date(self.year + 1, 1, 1) - date.resolution
        return date(self.year, self.month + 1, 1) - date.resolution

    def __str__(self) -> str:
        return self.slug


def parse_month(value: str) -> Month:
    value = (value or "").strip()
    if not _MONTH_RE.match(value):
        raise ValueError(f"Invalid month {value!r}, expected YYYY-MM")
    year_str, month_str = value.split("-", 1)
    return Month(int(year_str), int(month_str))


def today_in_timezone() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def resolve_month(value: Optional[str], *, today: Optional[date] = None) -> Month:
    if value:
        return parse_month(value)
    today = today or today_in_timezone()
    return Month(today.year, today.month)
