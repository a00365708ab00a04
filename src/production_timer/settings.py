"""Weekly / monthly goal settings."""

from __future__ import annotations

from .models import AppSettings
from .storage import StorageService

WEEKLY_GOAL_RANGE = (1, 168)
MONTHLY_GOAL_RANGE = (1, 744)


class SettingsValidationError(ValueError):
    pass


def _check_range(label: str, value: int, bounds: tuple[int, int]) -> None:
    low, high = bounds
    if not isinstance(value, int) or isinstance(value, bool):
        raise SettingsValidationError(f"{label} must be a whole number of hours")
    if value < low or value > high:
        raise SettingsValidationError(f"{label} must be between {low} and {high} hours")


def validate_goal_hours(weekly_hours: int, monthly_hours: int) -> None:
    _check_range("Weekly goal", weekly_hours, WEEKLY_GOAL_RANGE)
    _check_range("Monthly goal", monthly_hours, MONTHLY_GOAL_RANGE)


async def update_goals(storage: StorageService, weekly_hours: int, monthly_hours: int) -> AppSettings:
    """Validate and store goals given in hours. Stored in minutes."""
    validate_goal_hours(weekly_hours, monthly_hours)
    current = await storage.get_settings()
    updated = current.copy_with(
        weekly_goal_minutes=weekly_hours * 60,
        monthly_goal_minutes=monthly_hours * 60,
    )
    await storage.save_settings(updated)
    return updated


def goal_progress(value_hours: float, goal_hours: float) -> float:
    """Fraction of the goal reached, clamped to [0, 1]."""
    if goal_hours <= 0:
        return 0.0
    return min(max(value_hours / goal_hours, 0.0), 1.0)
