"""Data model: timer records, categories and app settings."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Optional

MAX_CATEGORIES = 3


@dataclass(frozen=True)
class TimerRecord:
    """One work session. ``ended_at is None`` while the session is active."""

    id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: int = 0
    category_id: Optional[str] = None

    @property
    def date_only(self) -> date:
        return self.started_at.date()

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.duration_seconds)

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    def copy_with(self, **changes) -> "TimerRecord":
        changes.pop("id", None)
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": self.duration_seconds,
            "category_id": self.category_id,
        }


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    color_value: int
    icon: str
    order: int

    def copy_with(self, **changes) -> "Category":
        changes.pop("id", None)
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "color_value": self.color_value,
            "color_hex": f"#{self.color_value & 0xFFFFFF:06X}",
            "icon": self.icon,
            "order": self.order,
        }

    @staticmethod
    def default_categories() -> list["Category"]:
        """Categories seeded on first run."""
        return [
            Category(id="default-study", name="Study", color_value=0xFF42A5F5, icon="book", order=0),
            Category(id="default-work", name="Work", color_value=0xFFFF9800, icon="work", order=1),
            Category(id="default-hobby", name="Hobby", color_value=0xFF66BB6A, icon="palette", order=2),
        ]


@dataclass(frozen=True)
class AppSettings:
    weekly_goal_minutes: int
    monthly_goal_minutes: int
    is_dark_mode: bool = False

    @classmethod
    def defaults(cls) -> "AppSettings":
        return cls(
            weekly_goal_minutes=40 * 60,
            monthly_goal_minutes=160 * 60,
            is_dark_mode=False,
        )

    @property
    def weekly_goal_hours(self) -> int:
        return self.weekly_goal_minutes // 60

    @property
    def monthly_goal_hours(self) -> int:
        return self.monthly_goal_minutes // 60

    def copy_with(self, **changes) -> "AppSettings":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "weekly_goal_minutes": self.weekly_goal_minutes,
            "monthly_goal_minutes": self.monthly_goal_minutes,
            "weekly_goal_hours": self.weekly_goal_hours,
            "monthly_goal_hours": self.monthly_goal_hours,
            "is_dark_mode": self.is_dark_mode,
        }
