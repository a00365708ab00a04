"""Statistics over timer records: pure computation, no I/O.

Records are bucketed by the calendar date their session started on. Seconds of
the running session that have not been written yet are passed in separately and
added on top.
"""

from __future__ import annotations

import calendar
import json
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from .models import Category, TimerRecord

SECONDS_PER_HOUR = 3600
WEEK_WINDOW_DAYS = 7
MONTH_WINDOW_DAYS = 30

# Heat level thresholds (seconds): none, <1h, <3h, <5h, >=5h
HEAT_THRESHOLDS = (3600, 3 * 3600, 5 * 3600)

SUMMARY_SEPARATOR = "-" * 9


def format_hours_minutes(seconds: int) -> str:
    """'2h 5m', or '5m' under an hour."""
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_duration_short(seconds: int) -> str:
    """'1h 30m 45s', '30m 45s' or '45s'."""
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


@dataclass(frozen=True)
class FocusStats:
    today_total_seconds: int
    weekly_hours: float
    monthly_hours: float

    def to_dict(self) -> dict:
        return {
            "today_total_seconds": self.today_total_seconds,
            "weekly_hours": round(self.weekly_hours, 2),
            "monthly_hours": round(self.monthly_hours, 2),
        }


@dataclass(frozen=True)
class DailyStats:
    date: date
    total_seconds: int
    category_seconds: dict[str, int] = field(default_factory=dict)

    @property
    def hours(self) -> float:
        return self.total_seconds / SECONDS_PER_HOUR

    @property
    def formatted_duration(self) -> str:
        return format_hours_minutes(self.total_seconds)

    @property
    def heat_level(self) -> int:
        if self.total_seconds <= 0:
            return 0
        for level, threshold in enumerate(HEAT_THRESHOLDS, start=1):
            if self.total_seconds < threshold:
                return level
        return len(HEAT_THRESHOLDS) + 1

    def detailed_summary(self, categories: Iterable[Category], is_today: bool) -> str:
        """Multi-line breakdown of the day by category.

        Example::

            Jan 15 (today)
            Study: 1h 30m
            Work: 2h 15m
            ---------
            Total: 3h 45m
        """
        date_text = f"{self.date:%b} {self.date.day}" + (" (today)" if is_today else "")
        if self.total_seconds == 0:
            return f"{date_text}\nNo records"

        lines = []
        for category in sorted(categories, key=lambda c: c.order):
            seconds = self.category_seconds.get(category.id)
            if seconds:
                lines.append(f"{category.name}: {format_hours_minutes(seconds)}")

        # Only uncategorized sessions that day
        if not lines:
            return f"{date_text}\n{self.formatted_duration}"
        if len(lines) == 1:
            return f"{date_text}\n{lines[0]}"
        return "\n".join([date_text, *lines, SUMMARY_SEPARATOR, f"Total: {self.formatted_duration}"])

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "total_seconds": self.total_seconds,
            "hours": round(self.hours, 2),
            "formatted_duration": self.formatted_duration,
            "heat_level": self.heat_level,
            "category_seconds": dict(self.category_seconds),
        }


@dataclass(frozen=True)
class MonthlyStats:
    year: int
    month: int
    total_seconds: int

    @property
    def hours(self) -> float:
        return self.total_seconds / SECONDS_PER_HOUR

    @property
    def formatted_month(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def formatted_duration(self) -> str:
        return format_hours_minutes(self.total_seconds)

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "month": self.month,
            "label": self.formatted_month,
            "total_seconds": self.total_seconds,
            "hours": round(self.hours, 2),
            "formatted_duration": self.formatted_duration,
        }


@dataclass(frozen=True)
class DailyTotal:
    date: date
    day_of_week: str
    total_seconds: int

    @property
    def formatted_time(self) -> str:
        return format_duration_short(self.total_seconds)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "dayOfWeek": self.day_of_week,
            "totalSeconds": self.total_seconds,
        }


# ---- Rollups ----


def focus_stats(records: Iterable[TimerRecord], now: datetime, unsaved_seconds: int = 0) -> FocusStats:
    """Today's total plus rolling 7-day and 30-day hours."""
    today = now.date()
    weekly_start = today - timedelta(days=WEEK_WINDOW_DAYS - 1)
    monthly_start = today - timedelta(days=MONTH_WINDOW_DAYS - 1)

    today_seconds = 0
    weekly_seconds = 0
    monthly_seconds = 0

    for record in records:
        record_date = record.date_only
        seconds = record.duration_seconds
        if record_date == today:
            today_seconds += seconds
        if record_date >= weekly_start:
            weekly_seconds += seconds
        if record_date >= monthly_start:
            monthly_seconds += seconds

    if unsaved_seconds > 0:
        today_seconds += unsaved_seconds
        weekly_seconds += unsaved_seconds
        monthly_seconds += unsaved_seconds

    return FocusStats(
        today_total_seconds=today_seconds,
        weekly_hours=weekly_seconds / SECONDS_PER_HOUR,
        monthly_hours=monthly_seconds / SECONDS_PER_HOUR,
    )


def category_stats(
    records: Iterable[TimerRecord],
    now: datetime,
    active_record_id: Optional[str] = None,
    unsaved_seconds: int = 0,
) -> dict[str, int]:
    """Seconds per category for today. Uncategorized records are skipped."""
    today = now.date()
    stats: dict[str, int] = defaultdict(int)
    active_category: Optional[str] = None

    for record in records:
        if record.id == active_record_id:
            active_category = record.category_id
        if record.date_only != today or record.category_id is None:
            continue
        stats[record.category_id] += record.duration_seconds

    if active_category is not None and unsaved_seconds > 0:
        stats[active_category] += unsaved_seconds

    return dict(stats)


def current_month_daily_stats(records: Iterable[TimerRecord], now: datetime) -> list[DailyStats]:
    """One entry per day of ``now``'s month, zero-filled, oldest first."""
    year, month = now.year, now.month
    days_in_month = calendar.monthrange(year, month)[1]

    daily_seconds: dict[date, int] = {date(year, month, d): 0 for d in range(1, days_in_month + 1)}
    daily_categories: dict[date, dict[str, int]] = {d: {} for d in daily_seconds}

    for record in records:
        record_date = record.date_only
        if record_date not in daily_seconds:
            continue
        daily_seconds[record_date] += record.duration_seconds
        if record.category_id is not None:
            per_category = daily_categories[record_date]
            per_category[record.category_id] = per_category.get(record.category_id, 0) + record.duration_seconds

    return [
        DailyStats(date=d, total_seconds=daily_seconds[d], category_seconds=daily_categories[d])
        for d in sorted(daily_seconds)
    ]


def monthly_stats(records: Iterable[TimerRecord]) -> list[MonthlyStats]:
    """Totals per month that has records, newest first."""
    totals: dict[tuple[int, int], int] = defaultdict(int)
    for record in records:
        record_date = record.date_only
        totals[(record_date.year, record_date.month)] += record.duration_seconds

    return [
        MonthlyStats(year=year, month=month, total_seconds=seconds)
        for (year, month), seconds in sorted(totals.items(), reverse=True)
    ]


def daily_totals(records: Iterable[TimerRecord]) -> list[DailyTotal]:
    """Per-day totals across all history, oldest first."""
    totals: dict[date, int] = defaultdict(int)
    for record in records:
        totals[record.date_only] += record.duration_seconds

    return [
        DailyTotal(date=d, day_of_week=d.strftime("%a"), total_seconds=seconds)
        for d, seconds in sorted(totals.items())
    ]


def export_daily_totals(records: Iterable[TimerRecord]) -> str:
    """JSON array of per-day totals (camelCase keys)."""
    return json.dumps([total.to_dict() for total in daily_totals(records)], indent=2)
