from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from moneyapp.errors import ValidationError
from moneyapp.models import parse_day

RANGES = ("1D", "1W", "30D", "3M", "6M", "1Y", "2Y", "YTD", "MAX", "CUSTOM")

# Windows long enough that a gap before the oldest transaction means "no history"
LARGE_RANGES = ("6M", "1Y", "2Y", "YTD", "MAX")

# Preset buttons that get disabled once the history boundary is known
BOUNDARY_GATED_RANGES = ("6M", "1Y", "2Y", "YTD")

DEFAULT_RANGE = "30D"


@dataclass(frozen=True)
class DateWindow:
    start: date
    end: date
    range_key: str = "CUSTOM"

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def is_large(self) -> bool:
        return self.range_key in LARGE_RANGES

    def to_dict(self) -> dict:
        return {"range": self.range_key, "start": self.start.isoformat(), "end": self.end.isoformat()}


def _preset_start(range_key: str, today: date) -> date:
    if range_key == "1D":
        return today - timedelta(days=1)
    if range_key == "1W":
        return today - timedelta(days=7)
    if range_key == "30D":
        return today - timedelta(days=30)
    if range_key == "3M":
        return today - relativedelta(months=3)
    if range_key == "6M":
        return today - relativedelta(months=6)
    if range_key == "1Y":
        return today - relativedelta(years=1)
    if range_key == "2Y":
        return today - relativedelta(years=2)
    if range_key == "YTD":
        return today.replace(month=1, day=1)
    if range_key == "MAX":
        return today - relativedelta(years=10)
    raise ValidationError(f"Unknown time range: {range_key}")


def validate_custom_range(start: Optional[date], end: Optional[date], today: date) -> None:
    """Reject bad custom windows up front; inputs are never silently corrected."""
    if start is None or end is None:
        raise ValidationError("Custom range requires both start and end dates")
    if start > end:
        raise ValidationError("Start date cannot be after end date")
    if start > today or end > today:
        raise ValidationError("Dates cannot be in the future")


def resolve_range(range_key: Optional[str], today: Optional[date] = None,
                  custom_start=None, custom_end=None) -> DateWindow:
    """Turn a preset (or CUSTOM start/end) into a concrete inclusive day window."""
    today = today or date.today()
    range_key = (range_key or DEFAULT_RANGE).upper()
    if range_key not in RANGES:
        raise ValidationError(f"Unknown time range: {range_key}")

    if range_key == "CUSTOM":
        start, end = parse_day(custom_start), parse_day(custom_end)
        if (custom_start and start is None) or (custom_end and end is None):
            raise ValidationError("Invalid date format")
        validate_custom_range(start, end, today)
        return DateWindow(start, end, "CUSTOM")

    return DateWindow(_preset_start(range_key, today), today, range_key)
