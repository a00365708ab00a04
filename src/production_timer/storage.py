"""SQLite persistence for timer records, categories and settings.

Timestamps are stored as UTC ISO-8601 strings and handed back as local,
timezone-aware datetimes.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiosqlite

from .models import AppSettings, Category, TimerRecord

logger = logging.getLogger("production_timer.storage")

SETTINGS_ROW_ID = 1


def _to_db_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone()


def _row_to_record(row: aiosqlite.Row) -> TimerRecord:
    return TimerRecord(
        id=row["id"],
        started_at=_from_db_time(row["started_at"]),
        ended_at=_from_db_time(row["ended_at"]),
        duration_seconds=row["duration_seconds"],
        category_id=row["category_id"] or None,
    )


class StorageService:
    """Owns the on-disk store. Opens one connection per operation."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    async def _connect(self) -> aiosqlite.Connection:
        db = await aiosqlite.connect(self.db_path)
        await db.execute("PRAGMA busy_timeout=5000")
        db.row_factory = aiosqlite.Row
        return db

    # ── Schema ─────────────────────────────────────────────────

    async def init_db(self) -> None:
        """Create tables, migrate older layouts and seed default settings."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA busy_timeout=5000")

            await db.execute("""
                CREATE TABLE IF NOT EXISTS timer_records (
                    id TEXT PRIMARY KEY,
                    started_at TEXT NOT NULL,
                    ended_at TEXT,
                    duration_seconds INTEGER NOT NULL DEFAULT 0
                )
            """)

            # Migration: sessions recorded before categories existed
            cursor = await db.execute("PRAGMA table_info(timer_records)")
            columns = [col[1] for col in await cursor.fetchall()]
            if "category_id" not in columns:
                await db.execute("ALTER TABLE timer_records ADD COLUMN category_id TEXT")
                logger.info("Migrated timer_records: added category_id")

            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_records_started ON timer_records(started_at)"
            )
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_records_active ON timer_records(ended_at)"
            )

            await db.execute("""
                CREATE TABLE IF NOT EXISTS categories (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    color_value INTEGER NOT NULL,
                    icon TEXT NOT NULL,
                    sort_order INTEGER NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS app_settings (
                    id INTEGER PRIMARY KEY DEFAULT 1,
                    weekly_goal_minutes INTEGER NOT NULL,
                    monthly_goal_minutes INTEGER NOT NULL,
                    is_dark_mode INTEGER NOT NULL DEFAULT 0,
                    CHECK (id = 1)
                )
            """)

            defaults = AppSettings.defaults()
            await db.execute(
                """INSERT OR IGNORE INTO app_settings
                   (id, weekly_goal_minutes, monthly_goal_minutes, is_dark_mode)
                   VALUES (?, ?, ?, ?)""",
                (SETTINGS_ROW_ID, defaults.weekly_goal_minutes,
                 defaults.monthly_goal_minutes, int(defaults.is_dark_mode)),
            )
            await db.commit()

        logger.info(f"Database initialized at {self.db_path}")

    # ── Settings ───────────────────────────────────────────────

    async def get_settings(self) -> AppSettings:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT weekly_goal_minutes, monthly_goal_minutes, is_dark_mode "
                "FROM app_settings WHERE id = ?",
                (SETTINGS_ROW_ID,),
            )
            row = await cursor.fetchone()
        finally:
            await db.close()

        if row is None:
            return AppSettings.defaults()
        return AppSettings(
            weekly_goal_minutes=row["weekly_goal_minutes"],
            monthly_goal_minutes=row["monthly_goal_minutes"],
            is_dark_mode=bool(row["is_dark_mode"]),
        )

    async def save_settings(self, settings: AppSettings) -> None:
        db = await self._connect()
        try:
            await db.execute(
                """INSERT INTO app_settings (id, weekly_goal_minutes, monthly_goal_minutes, is_dark_mode)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       weekly_goal_minutes = excluded.weekly_goal_minutes,
                       monthly_goal_minutes = excluded.monthly_goal_minutes,
                       is_dark_mode = excluded.is_dark_mode""",
                (SETTINGS_ROW_ID, settings.weekly_goal_minutes,
                 settings.monthly_goal_minutes, int(settings.is_dark_mode)),
            )
            await db.commit()
        finally:
            await db.close()

    # ── Sessions ───────────────────────────────────────────────

    async def start_new_session(
        self, started_at: datetime, category_id: Optional[str] = None
    ) -> TimerRecord:
        record = TimerRecord(
            id=str(uuid.uuid4()),
            started_at=started_at,
            duration_seconds=0,
            category_id=category_id,
        )
        db = await self._connect()
        try:
            await db.execute(
                """INSERT INTO timer_records (id, started_at, ended_at, duration_seconds, category_id)
                   VALUES (?, ?, NULL, 0, ?)""",
                (record.id, _to_db_time(started_at), category_id),
            )
            await db.commit()
        finally:
            await db.close()
        logger.debug(f"Started record {record.id[:8]} (category={category_id})")
        return record

    async def get_active_record(self) -> Optional[TimerRecord]:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT * FROM timer_records WHERE ended_at IS NULL "
                "ORDER BY started_at DESC LIMIT 1"
            )
            row = await cursor.fetchone()
        finally:
            await db.close()
        return _row_to_record(row) if row else None

    async def get_open_records(self) -> list[TimerRecord]:
        """Every record without ``ended_at``, newest first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT * FROM timer_records WHERE ended_at IS NULL ORDER BY started_at DESC"
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [_row_to_record(row) for row in rows]

    async def get_record_by_id(self, record_id: str) -> Optional[TimerRecord]:
        db = await self._connect()
        try:
            cursor = await db.execute("SELECT * FROM timer_records WHERE id = ?", (record_id,))
            row = await cursor.fetchone()
        finally:
            await db.close()
        return _row_to_record(row) if row else None

    async def update_running_session(self, record_id: str, duration_seconds: int) -> bool:
        """Write progress of a running session. Returns False for unknown ids."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "UPDATE timer_records SET duration_seconds = ? WHERE id = ?",
                (duration_seconds, record_id),
            )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    async def complete_session(
        self, record_id: str, duration_seconds: int, ended_at: datetime
    ) -> bool:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "UPDATE timer_records SET duration_seconds = ?, ended_at = ? WHERE id = ?",
                (duration_seconds, _to_db_time(ended_at), record_id),
            )
            await db.commit()
            return cursor.rowcount > 0
        finally:
            await db.close()

    async def delete_record(self, record_id: str) -> None:
        db = await self._connect()
        try:
            await db.execute("DELETE FROM timer_records WHERE id = ?", (record_id,))
            await db.commit()
        finally:
            await db.close()

    async def get_all_records(self) -> list[TimerRecord]:
        db = await self._connect()
        try:
            cursor = await db.execute("SELECT * FROM timer_records ORDER BY started_at ASC")
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [_row_to_record(row) for row in rows]

    # ── Categories ─────────────────────────────────────────────

    async def load_categories(self) -> list[Category]:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, name, color_value, icon, sort_order FROM categories ORDER BY sort_order"
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()
        return [
            Category(
                id=row["id"],
                name=row["name"],
                color_value=row["color_value"],
                icon=row["icon"],
                order=row["sort_order"],
            )
            for row in rows
        ]

    async def save_categories(self, categories: list[Category]) -> None:
        """Replace the stored category list."""
        db = await self._connect()
        try:
            await db.execute("DELETE FROM categories")
            await db.executemany(
                "INSERT INTO categories (id, name, color_value, icon, sort_order) VALUES (?, ?, ?, ?, ?)",
                [(c.id, c.name, c.color_value, c.icon, c.order) for c in categories],
            )
            await db.commit()
        finally:
            await db.close()
