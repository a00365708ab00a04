"""
Production Timer service: local FastAPI app that owns the timer and the store.

This server provides:
- The session timer (start / stop / reset / category switch) ticking once a second
- Lifecycle signals that auto-stop the timer when the user leaves
- Statistics, categories and goal settings
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, Field

from . import __version__
from .categories import CategoryLimitError, CategoryNotFoundError, CategoryService
from .config import TimerConfig, get_config
from .controller import TimerController
from .log_buffer import configure_logging, recent_logs
from .settings import (
    MONTHLY_GOAL_RANGE,
    WEEKLY_GOAL_RANGE,
    SettingsValidationError,
    goal_progress,
    update_goals,
)
from .stats import (
    category_stats,
    current_month_daily_stats,
    export_daily_totals,
    focus_stats,
    monthly_stats,
)
from .storage import StorageService
from .wake_lock import WakeLockService

logger = logging.getLogger("production_timer.server")

TICK_JOB_ID = "timer_tick"


# Pydantic Models
class StartRequest(BaseModel):
    category_id: Optional[str] = None


class CategorySwitchRequest(BaseModel):
    category_id: str


class LifecycleRequest(BaseModel):
    state: str  # inactive / paused / detached / hidden / resumed


class CategoryRequest(BaseModel):
    name: str = Field(min_length=1, max_length=40)
    color_value: int = Field(default=0xFF5F6AF3, ge=0, le=0xFFFFFFFF)
    icon: str = "label"


class ReorderRequest(BaseModel):
    old_index: int
    new_index: int


class GoalsRequest(BaseModel):
    weekly_goal_hours: int = Field(ge=WEEKLY_GOAL_RANGE[0], le=WEEKLY_GOAL_RANGE[1])
    monthly_goal_hours: int = Field(ge=MONTHLY_GOAL_RANGE[0], le=MONTHLY_GOAL_RANGE[1])


class TimerResponse(BaseModel):
    state: dict
    selected_category_id: Optional[str]
    black_screen_delay_seconds: int


def create_app(
    config: Optional[TimerConfig] = None,
    enable_ticker: bool = True,
    clock: Optional[Callable[[], int]] = None,
    wall_clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """Build the app. ``clock``/``wall_clock`` override time sources in tests."""
    config = config or get_config()
    configure_logging(config.log_level)

    storage = StorageService(config.db_path)
    categories = CategoryService(storage)
    controller_kwargs = {}
    if clock is not None:
        controller_kwargs["clock"] = clock
    if wall_clock is not None:
        controller_kwargs["wall_clock"] = wall_clock
    controller = TimerController(
        storage,
        categories,
        WakeLockService(config.wake_lock_command),
        persist_interval_ms=config.persist_interval_seconds * 1000,
        black_screen_delay_ms=config.black_screen_delay_seconds * 1000,
        **controller_kwargs,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await storage.init_db()
        await categories.load()
        await controller.restore()

        scheduler = None
        if enable_ticker:
            scheduler = AsyncIOScheduler()
            scheduler.add_job(
                controller.tick,
                trigger=IntervalTrigger(seconds=1),
                id=TICK_JOB_ID,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            scheduler.start()
            logger.info("Timer ticker started")
        yield

        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Timer ticker stopped")
        # Process exit is treated like the app being detached
        await controller.shutdown()

    app = FastAPI(
        title="Production Timer",
        description="Local focus timer with categories, goals and statistics",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.storage = storage
    app.state.categories = categories
    app.state.controller = controller

    def _timer_payload() -> dict:
        return {
            "state": controller.state.to_dict(),
            "selected_category_id": controller.selected_category_id,
            "black_screen_delay_seconds": config.black_screen_delay_seconds,
        }

    # ---- Health ----

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    # ---- Timer ----

    @app.get("/api/timer", response_model=TimerResponse)
    async def get_timer():
        return _timer_payload()

    @app.post("/api/timer/start", response_model=TimerResponse)
    async def start_timer(request: Optional[StartRequest] = None):
        category_id = request.category_id if request else None
        try:
            await controller.start(category_id)
        except CategoryNotFoundError:
            raise HTTPException(status_code=404, detail=f"Category not found: {category_id}")
        return _timer_payload()

    @app.post("/api/timer/stop", response_model=TimerResponse)
    async def stop_timer():
        await controller.stop()
        return _timer_payload()

    @app.post("/api/timer/reset", response_model=TimerResponse)
    async def reset_timer():
        await controller.reset()
        return _timer_payload()

    @app.post("/api/timer/category", response_model=TimerResponse)
    async def switch_category(request: CategorySwitchRequest):
        try:
            await controller.switch_category(request.category_id)
        except CategoryNotFoundError:
            raise HTTPException(status_code=404, detail=f"Category not found: {request.category_id}")
        return _timer_payload()

    @app.post("/api/timer/black-screen/exit", response_model=TimerResponse)
    async def exit_black_screen():
        controller.exit_black_screen()
        return _timer_payload()

    @app.post("/api/timer/interaction", response_model=TimerResponse)
    async def register_interaction():
        controller.register_interaction()
        return _timer_payload()

    @app.post("/api/lifecycle", response_model=TimerResponse)
    async def lifecycle(request: LifecycleRequest):
        try:
            await controller.handle_lifecycle(request.state)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _timer_payload()

    # ---- Statistics ----

    @app.get("/api/stats/focus")
    async def get_focus_stats():
        records = await storage.get_all_records()
        settings = await storage.get_settings()
        stats = focus_stats(records, controller.now(), controller.state.unsaved_seconds)
        return {
            **stats.to_dict(),
            "weekly_goal_hours": settings.weekly_goal_hours,
            "monthly_goal_hours": settings.monthly_goal_hours,
            "weekly_progress": goal_progress(stats.weekly_hours, settings.weekly_goal_hours),
            "monthly_progress": goal_progress(stats.monthly_hours, settings.monthly_goal_hours),
        }

    @app.get("/api/stats/categories")
    async def get_category_stats():
        records = await storage.get_all_records()
        state = controller.state
        per_category = category_stats(
            records,
            controller.now(),
            active_record_id=state.active_record_id if state.is_running else None,
            unsaved_seconds=state.unsaved_seconds,
        )
        return {
            "categories": [
                {**c.to_dict(), "today_seconds": per_category.get(c.id, 0)}
                for c in categories.categories
            ],
        }

    @app.get("/api/stats/daily")
    async def get_daily_stats():
        records = await storage.get_all_records()
        now = controller.now()
        days = current_month_daily_stats(records, now)
        today = now.date()
        return {
            "year": now.year,
            "month": now.month,
            "days": [
                {
                    **day.to_dict(),
                    "summary": day.detailed_summary(categories.categories, is_today=day.date == today),
                }
                for day in days
            ],
        }

    @app.get("/api/stats/monthly")
    async def get_monthly_stats():
        records = await storage.get_all_records()
        return {"months": [m.to_dict() for m in monthly_stats(records)]}

    @app.get("/api/records")
    async def list_records(limit: int = 0):
        records = await storage.get_all_records()
        if limit > 0:
            records = records[-limit:]
        return {"records": [r.to_dict() for r in records]}

    @app.get("/api/export/daily")
    async def export_daily():
        records = await storage.get_all_records()
        return Response(export_daily_totals(records), media_type="application/json")

    # ---- Categories ----

    @app.get("/api/categories")
    async def list_categories():
        return {
            "categories": [c.to_dict() for c in categories.categories],
            "selected_category_id": controller.selected_category_id,
        }

    @app.post("/api/categories", status_code=201)
    async def add_category(request: CategoryRequest):
        try:
            category = await categories.add(request.name, request.color_value, request.icon)
        except CategoryLimitError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return category.to_dict()

    @app.post("/api/categories/reorder")
    async def reorder_categories(request: ReorderRequest):
        try:
            ordered = await categories.reorder(request.old_index, request.new_index)
        except IndexError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"categories": [c.to_dict() for c in ordered]}

    @app.put("/api/categories/{category_id}")
    async def update_category(category_id: str, request: CategoryRequest):
        try:
            category = await categories.update(
                category_id, request.name, request.color_value, request.icon
            )
        except CategoryNotFoundError:
            raise HTTPException(status_code=404, detail=f"Category not found: {category_id}")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return category.to_dict()

    @app.delete("/api/categories/{category_id}")
    async def delete_category(category_id: str):
        if categories.get(category_id) is None:
            raise HTTPException(status_code=404, detail=f"Category not found: {category_id}")
        await categories.delete(category_id)
        return {"deleted": category_id, "categories": [c.to_dict() for c in categories.categories]}

    # ---- Settings ----

    @app.get("/api/settings")
    async def get_settings():
        settings = await storage.get_settings()
        return settings.to_dict()

    @app.put("/api/settings")
    async def put_settings(request: GoalsRequest):
        try:
            settings = await update_goals(
                storage, request.weekly_goal_hours, request.monthly_goal_hours
            )
        except SettingsValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        logger.info(
            f"Goals updated: weekly={settings.weekly_goal_hours}h monthly={settings.monthly_goal_hours}h"
        )
        return settings.to_dict()

    # ---- Logs ----

    @app.get("/api/logs")
    async def get_logs(limit: int = 50):
        return {"logs": recent_logs(limit)}

    return app


def run(config: Optional[TimerConfig] = None) -> None:
    """Run the service in the foreground."""
    config = config or get_config()
    configure_logging(config.log_level)
    logger.info(f"Starting Production Timer on {config.host}:{config.port} (db={config.db_path})")
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )
