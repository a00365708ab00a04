"""Unit tests for TimerEngine: session state machine, no I/O dependencies."""

from datetime import datetime, timezone

import pytest

from production_timer.models import TimerRecord
from production_timer.timer import (
    MAX_TICK_GAP_MS,
    PersistRequest,
    StopResult,
    TickResult,
    TimerEngine,
    TimerEvent,
    format_hms,
)


# ---- Helpers ----

STARTED = datetime(2026, 2, 11, 9, 0, tzinfo=timezone.utc)


def make_record(record_id: str = "rec-1", duration: int = 0, category: str = "default-study",
                ended: bool = False) -> TimerRecord:
    return TimerRecord(
        id=record_id,
        started_at=STARTED,
        ended_at=STARTED if ended else None,
        duration_seconds=duration,
        category_id=category,
    )


def started_engine(now_ms: int = 0, **kwargs) -> TimerEngine:
    engine = TimerEngine(now_mono_ms=now_ms, **kwargs)
    engine.start(make_record(), now_ms)
    return engine


def advance(engine: TimerEngine, start_ms: int, seconds: int) -> TickResult:
    """Advance the engine by `seconds` in 1-second ticks, returning the last result."""
    result = TickResult()
    for i in range(seconds):
        result = engine.tick(start_ms + (i + 1) * 1000)
    return result


def collect_events(engine: TimerEngine, start_ms: int, seconds: int) -> list[TimerEvent]:
    events = []
    for i in range(seconds):
        events.extend(engine.tick(start_ms + (i + 1) * 1000).events)
    return events


# ---- format_hms ----

class TestFormatHms:
    def test_zero(self):
        assert format_hms(0) == "00:00:00"

    def test_hours_minutes_seconds(self):
        assert format_hms(3725) == "01:02:05"

    def test_negative_clamps(self):
        assert format_hms(-10) == "00:00:00"

    def test_over_a_day(self):
        assert format_hms(25 * 3600) == "25:00:00"


# ---- Start ----

class TestStart:
    def test_initial_state(self):
        state = TimerEngine(now_mono_ms=0).state
        assert not state.is_running
        assert not state.has_active_record
        assert state.session_elapsed_ms == 0

    def test_start_runs(self):
        engine = started_engine()
        assert engine.is_running
        assert engine.active_record_id == "rec-1"
        assert engine.category_id == "default-study"
        assert engine.state.started_at == STARTED

    def test_start_twice_is_noop(self):
        engine = started_engine()
        advance(engine, 0, 5)
        assert engine.start(make_record("rec-2"), 5000) is False
        assert engine.active_record_id == "rec-1"
        assert engine.state.session_elapsed_seconds == 5

    def test_start_on_ended_record_raises(self):
        engine = TimerEngine(now_mono_ms=0)
        with pytest.raises(ValueError):
            engine.start(make_record(ended=True), 0)

    def test_resume_continues_from_stored_duration(self):
        engine = TimerEngine(now_mono_ms=0)
        engine.start(make_record(duration=100), 0)
        assert engine.state.session_elapsed_seconds == 100
        assert engine.state.persisted_seconds == 100
        advance(engine, 0, 3)
        assert engine.state.record_elapsed_seconds == 103

    def test_ticks_accumulate(self):
        engine = started_engine()
        advance(engine, 0, 10)
        assert engine.state.session_elapsed_ms == 10_000
        assert engine.state.record_elapsed_ms == 10_000

    def test_not_running_does_not_accumulate(self):
        engine = TimerEngine(now_mono_ms=0)
        advance(engine, 0, 10)
        assert engine.state.session_elapsed_ms == 0


# ---- Restore ----

class TestRestore:
    def test_restore_attaches_without_running(self):
        engine = TimerEngine(now_mono_ms=0)
        engine.restore(make_record(duration=42))
        state = engine.state
        assert not state.is_running
        assert state.active_record_id == "rec-1"
        assert state.session_elapsed_seconds == 42
        assert state.unsaved_seconds == 0

    def test_restore_ignored_while_running(self):
        engine = started_engine()
        engine.restore(make_record("rec-9", duration=500))
        assert engine.active_record_id == "rec-1"


# ---- Persistence ----

class TestPersistence:
    def test_no_persist_before_interval(self):
        engine = started_engine()
        events = collect_events(engine, 0, 29)
        assert TimerEvent.PERSIST_DUE not in events

    def test_persist_due_at_interval(self):
        engine = started_engine()
        result = advance(engine, 0, 30)
        assert TimerEvent.PERSIST_DUE in result.events
        assert result.persist == PersistRequest("rec-1", 30)

    def test_persist_repeats_until_marked(self):
        engine = started_engine()
        advance(engine, 0, 30)
        result = engine.tick(31_000)
        assert result.persist == PersistRequest("rec-1", 31)

    def test_mark_persisted_resets_interval(self):
        engine = started_engine()
        advance(engine, 0, 30)
        engine.mark_persisted("rec-1", 30)
        events = collect_events(engine, 30_000, 29)
        assert TimerEvent.PERSIST_DUE not in events
        result = engine.tick(60_000)
        assert result.persist == PersistRequest("rec-1", 60)

    def test_mark_persisted_other_record_ignored(self):
        engine = started_engine()
        advance(engine, 0, 30)
        engine.mark_persisted("rec-other", 30)
        assert engine.state.persisted_seconds == 0

    def test_mark_persisted_clamped_to_elapsed(self):
        engine = started_engine()
        advance(engine, 0, 10)
        engine.mark_persisted("rec-1", 999)
        assert engine.state.persisted_seconds == 10

    def test_custom_interval(self):
        engine = started_engine(persist_interval_ms=5_000)
        result = advance(engine, 0, 5)
        assert result.persist == PersistRequest("rec-1", 5)

    def test_unsaved_seconds(self):
        engine = started_engine()
        advance(engine, 0, 30)
        engine.mark_persisted("rec-1", 30)
        advance(engine, 30_000, 15)
        assert engine.state.unsaved_seconds == 15


# ---- Black screen ----

class TestBlackScreen:
    def test_enters_after_delay(self):
        engine = started_engine(black_screen_delay_ms=5_000)
        assert TimerEvent.BLACK_SCREEN_ENTERED not in collect_events(engine, 0, 4)
        result = engine.tick(5_000)
        assert TimerEvent.BLACK_SCREEN_ENTERED in result.events
        assert engine.state.is_black_screen_active

    def test_event_fires_once(self):
        engine = started_engine(black_screen_delay_ms=5_000)
        advance(engine, 0, 5)
        events = collect_events(engine, 5_000, 10)
        assert TimerEvent.BLACK_SCREEN_ENTERED not in events
        assert engine.state.is_black_screen_active

    def test_interaction_postpones(self):
        engine = started_engine(black_screen_delay_ms=5_000)
        advance(engine, 0, 4)
        engine.register_interaction(4_000)
        assert TimerEvent.BLACK_SCREEN_ENTERED not in collect_events(engine, 4_000, 4)
        assert TimerEvent.BLACK_SCREEN_ENTERED in engine.tick(9_000).events

    def test_exit(self):
        engine = started_engine(black_screen_delay_ms=5_000)
        advance(engine, 0, 5)
        assert engine.exit_black_screen(5_500) is True
        assert not engine.state.is_black_screen_active
        assert engine.exit_black_screen(5_600) is False

    def test_exit_restarts_countdown(self):
        engine = started_engine(black_screen_delay_ms=5_000)
        advance(engine, 0, 5)
        engine.exit_black_screen(5_000)
        assert TimerEvent.BLACK_SCREEN_ENTERED not in collect_events(engine, 5_000, 4)
        assert TimerEvent.BLACK_SCREEN_ENTERED in engine.tick(10_000).events

    def test_not_while_stopped(self):
        engine = TimerEngine(now_mono_ms=0, black_screen_delay_ms=5_000)
        assert engine.tick(60_000).events == []
        assert not engine.state.is_black_screen_active

    def test_timer_keeps_running_behind_black_screen(self):
        engine = started_engine(black_screen_delay_ms=5_000)
        advance(engine, 0, 20)
        assert engine.is_running
        assert engine.state.session_elapsed_seconds == 20

    def test_stop_clears_black_screen(self):
        engine = started_engine(black_screen_delay_ms=5_000)
        advance(engine, 0, 5)
        engine.stop(5_000)
        assert not engine.state.is_black_screen_active


# ---- Stop / reset ----

class TestStopReset:
    def test_stop_returns_final_duration(self):
        engine = started_engine()
        advance(engine, 0, 10)
        result = engine.stop(10_500)
        assert result == StopResult("rec-1", 10)
        state = engine.state
        assert not state.is_running
        assert not state.has_active_record
        assert state.session_elapsed_ms == 0

    def test_stop_includes_partial_tick(self):
        engine = started_engine()
        advance(engine, 0, 10)
        assert engine.stop(11_000) == StopResult("rec-1", 11)

    def test_stop_without_record(self):
        assert TimerEngine(now_mono_ms=0).stop(1_000) is None

    def test_stop_restored_record(self):
        engine = TimerEngine(now_mono_ms=0)
        engine.restore(make_record(duration=50))
        assert engine.stop(60_000) == StopResult("rec-1", 50)

    def test_pause_keeps_record_attached(self):
        engine = started_engine()
        advance(engine, 0, 10)
        assert engine.pause(10_500) == StopResult("rec-1", 10)
        state = engine.state
        assert not state.is_running
        assert state.active_record_id == "rec-1"
        assert state.record_elapsed_ms == 10_500

        advance(engine, 10_500, 5)
        assert engine.stop(20_000) == StopResult("rec-1", 10)
        assert not engine.state.has_active_record

    def test_pause_without_record(self):
        assert TimerEngine(now_mono_ms=0).pause(1_000) is None

    def test_reset_returns_record_id(self):
        engine = started_engine()
        advance(engine, 0, 10)
        assert engine.reset() == "rec-1"
        assert not engine.is_running
        assert engine.state.session_elapsed_ms == 0

    def test_reset_without_record(self):
        assert TimerEngine(now_mono_ms=0).reset() is None


# ---- Category switch ----

class TestSwitchCategory:
    def test_switch_closes_record_and_continues_session(self):
        engine = started_engine()
        advance(engine, 0, 20)
        closed = engine.switch_category(make_record("rec-2", category="default-work"), 20_000)
        assert closed == StopResult("rec-1", 20)

        state = engine.state
        assert state.is_running
        assert state.active_record_id == "rec-2"
        assert state.category_id == "default-work"
        assert state.session_elapsed_ms == 20_000
        assert state.record_elapsed_ms == 0
        assert state.persisted_seconds == 0

    def test_after_switch_both_clocks_advance(self):
        engine = started_engine()
        advance(engine, 0, 20)
        engine.switch_category(make_record("rec-2", category="default-work"), 20_000)
        advance(engine, 20_000, 5)
        assert engine.state.session_elapsed_seconds == 25
        assert engine.state.record_elapsed_seconds == 5

    def test_persist_interval_counts_from_new_record(self):
        engine = started_engine()
        advance(engine, 0, 20)
        engine.switch_category(make_record("rec-2"), 20_000)
        events = collect_events(engine, 20_000, 29)
        assert TimerEvent.PERSIST_DUE not in events
        assert engine.tick(50_000).persist == PersistRequest("rec-2", 30)

    def test_switch_when_stopped_is_noop(self):
        engine = TimerEngine(now_mono_ms=0)
        assert engine.switch_category(make_record("rec-2"), 1_000) is None
        assert not engine.state.has_active_record


# ---- Edge cases ----

class TestEdgeCases:
    def test_suspend_gap_not_counted(self):
        engine = started_engine()
        engine.tick(MAX_TICK_GAP_MS + 1)
        assert engine.state.session_elapsed_ms == 0
        engine.tick(MAX_TICK_GAP_MS + 1_001)
        assert engine.state.session_elapsed_ms == 1_000

    def test_gap_at_limit_counted(self):
        engine = started_engine()
        engine.tick(MAX_TICK_GAP_MS)
        assert engine.state.session_elapsed_ms == MAX_TICK_GAP_MS

    def test_clock_going_backwards_ignored(self):
        engine = started_engine(now_ms=5_000)
        engine.tick(4_000)
        assert engine.state.session_elapsed_ms == 0

    def test_all_values_integer(self):
        engine = started_engine()
        engine.tick(1_337)
        state = engine.state
        assert isinstance(state.session_elapsed_ms, int)
        assert state.session_elapsed_seconds == 1

    def test_to_dict(self):
        engine = started_engine()
        advance(engine, 0, 10)
        data = engine.state.to_dict()
        assert data["session_display"] == "00:00:10"
        assert data["is_running"] is True
        assert data["unsaved_seconds"] == 10
        assert data["started_at"] == STARTED.isoformat()
