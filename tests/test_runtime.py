"""
NDE - Experience Runtime Tests

Tests cover:
1. Boot sequence (late init, auto-start, debug start phase)
2. Command queue and auto-start cancellation
3. Shutdown
4. Status tracker events and broadcast rate limiting
"""

import pytest
import sys
import os
from unittest.mock import Mock

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import core_registry as reg
from core.experience import ManualClock
from experience_runtime import ExperienceRuntime
from experience_settings import default_settings
from experience_state import ExperienceStatusTracker


@pytest.fixture(autouse=True)
def isolated_registry(monkeypatch):
    monkeypatch.setattr(reg, 'socketio', None)
    monkeypatch.setattr(reg, 'audit_log', None)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def emitter():
    emitter = Mock()
    emitter.get_stats.return_value = {'sent': 0, 'enabled': True}
    return emitter


@pytest.fixture
def runtime(clock, emitter):
    rt = ExperienceRuntime(default_settings(), clock=clock, emitter=emitter)
    rt.boot()
    return rt


def tick_at(runtime, clock, seconds):
    clock.set(seconds)
    return runtime.tick()


class SteppingClock(ManualClock):
    """Clock that moves forward a microsecond on every read"""

    STEP = 1e-6

    def now(self):
        self._now += self.STEP
        return self._now


class TestBoot:
    """Late initialization and auto-start"""

    def test_not_initialized_before_init_delay(self, runtime, clock):
        tick_at(runtime, clock, 0.05)
        assert runtime.sequencer.initialized is False

    def test_auto_start_after_delay(self, runtime, clock, emitter):
        tick_at(runtime, clock, 0.1)
        assert runtime.sequencer.initialized is True
        assert runtime.sequencer.is_running is False

        tick_at(runtime, clock, 5.0)
        assert runtime.sequencer.is_running is False

        tick_at(runtime, clock, 5.2)
        assert runtime.sequencer.is_running is True
        assert runtime.sequencer.current_phase == 1
        emitter.send_start.assert_called_once()

    def test_debug_mode_starts_at_configured_phase(self, clock, emitter):
        settings = default_settings()
        settings['experience']['debug_mode'] = True
        settings['experience']['debug_start_phase'] = 4
        rt = ExperienceRuntime(settings, clock=clock, emitter=emitter)
        rt.boot()

        tick_at(rt, clock, 0.1)
        assert rt.sequencer.is_running is True
        assert rt.sequencer.current_phase == 4
        assert rt.sequencer.elapsed() == pytest.approx(90.0)
        assert len(rt.scheduler) == 0

    def test_boot_is_idempotent(self, runtime):
        runtime.boot()
        assert len(runtime.scheduler) == 1

    def test_subsystems_registered_in_order(self, runtime):
        names = [s.name for s in runtime.sequencer.subsystems]
        assert names == ['star_field', 'visual_effects', 'spatial_audio']

    def test_full_run_ends_stopped(self, runtime, clock, emitter):
        tick_at(runtime, clock, 0.1)
        tick_at(runtime, clock, 5.2)
        assert runtime.sequencer.is_running

        tick_at(runtime, clock, 5.2 + 180.0)
        assert runtime.sequencer.is_running is False
        emitter.send_end.assert_called_once()


class TestCommands:
    """Queued operator commands"""

    def test_unknown_command_rejected(self, runtime):
        assert runtime.submit('explode') is False
        assert runtime.pending_commands() == 0

    def test_commands_wait_for_next_tick(self, runtime, clock):
        tick_at(runtime, clock, 0.1)
        assert runtime.submit('start') is True
        assert runtime.sequencer.is_running is False
        assert runtime.pending_commands() == 1

        tick_at(runtime, clock, 0.2)
        assert runtime.sequencer.is_running is True
        assert runtime.pending_commands() == 0

    def test_start_before_initialization_is_refused(self, runtime, clock):
        runtime.submit('start')
        tick_at(runtime, clock, 0.01)
        assert runtime.sequencer.is_running is False

    def test_start_at_phase(self, runtime, clock):
        tick_at(runtime, clock, 0.1)
        runtime.submit('start_at_phase', 3)
        tick_at(runtime, clock, 0.2)
        assert runtime.sequencer.current_phase == 3

    def test_stop_cancels_auto_start(self, runtime, clock):
        tick_at(runtime, clock, 0.1)
        runtime.submit('stop')
        tick_at(runtime, clock, 1.0)
        tick_at(runtime, clock, 10.0)
        assert runtime.sequencer.is_running is False
        assert len(runtime.scheduler) == 0

    def test_toggle(self, runtime, clock):
        tick_at(runtime, clock, 0.1)
        runtime.submit('toggle')
        tick_at(runtime, clock, 0.2)
        assert runtime.sequencer.is_running is True
        runtime.submit('toggle')
        tick_at(runtime, clock, 0.3)
        assert runtime.sequencer.is_running is False

    def test_intro_hands_off_to_phase_five(self, runtime, clock):
        tick_at(runtime, clock, 0.1)
        runtime.submit('intro')
        tick_at(runtime, clock, 0.2)
        assert runtime.intro.stage == 'heartbeat'

        t = 0.2
        while t < 25.0:
            t += 0.5
            tick_at(runtime, clock, t)
        assert runtime.intro.finished is True
        assert runtime.sequencer.is_running is True
        assert runtime.sequencer.current_phase == 5

    def test_intro_restart(self, runtime, clock):
        tick_at(runtime, clock, 0.1)
        runtime.submit('intro')
        tick_at(runtime, clock, 0.2)
        runtime.submit('intro')
        tick_at(runtime, clock, 0.3)
        assert runtime.intro.stage_started_at == pytest.approx(0.2)

        runtime.submit('intro', True)
        tick_at(runtime, clock, 0.4)
        assert runtime.intro.stage_started_at == pytest.approx(0.4)


class TestTickPipeline:
    """Per-tick behaviour"""

    def test_flush_every_tick(self, runtime, clock, emitter):
        for i in range(1, 4):
            tick_at(runtime, clock, i * 0.05)
        assert emitter.flush.call_count == 3
        assert runtime.tick_count == 3

    def test_haptics_follow_phase(self, runtime, clock, emitter):
        tick_at(runtime, clock, 0.1)
        tick_at(runtime, clock, 5.2)
        tick_at(runtime, clock, 20.2)
        phase, progress = emitter.update_from_phase.call_args[0]
        assert phase == 1
        assert progress == pytest.approx(0.5)

    def test_start_at_phase_uses_tick_time(self, emitter):
        clock = SteppingClock()
        rt = ExperienceRuntime(default_settings(), clock=clock, emitter=emitter)
        rt.boot()
        tick_at(rt, clock, 0.5)

        rt.submit('start_at_phase', 5)
        tick_at(rt, clock, 1.0)
        assert rt.sequencer.current_phase == 5
        assert rt.sequencer.progress == 0.0
        history = rt.status_tracker.get_history()
        assert [h['event'] for h in history] == ['started']
        phase, progress = emitter.update_from_phase.call_args[0]
        assert (phase, progress) == (5, 0.0)

    def test_auto_start_uses_tick_time(self, emitter):
        clock = SteppingClock()
        rt = ExperienceRuntime(default_settings(), clock=clock, emitter=emitter)
        rt.boot()
        tick_at(rt, clock, 0.5)
        tick_at(rt, clock, 6.0)
        assert rt.sequencer.is_running is True
        assert rt.sequencer.state.start_instant == rt.sequencer.state.last_tick

    def test_leading_zero_length_phase(self, emitter):
        clock = SteppingClock()
        settings = default_settings()
        settings['experience']['phase_durations'] = [0.0, 0.0, 30.0, 30.0]
        rt = ExperienceRuntime(settings, clock=clock, emitter=emitter)
        rt.boot()
        tick_at(rt, clock, 0.5)

        rt.submit('start')
        assert tick_at(rt, clock, 1.0) is True
        assert rt.sequencer.current_phase == 2
        assert rt.sequencer.progress == 0.0


class TestShutdown:
    """Runtime shutdown"""

    def test_shutdown_stops_and_closes(self, runtime, clock, emitter):
        tick_at(runtime, clock, 0.1)
        tick_at(runtime, clock, 5.2)
        runtime.shutdown()
        assert runtime.sequencer.is_running is False
        emitter.send_end.assert_called_once()
        emitter.shutdown.assert_called_once()

    def test_shutdown_is_idempotent(self, runtime, emitter):
        runtime.shutdown()
        runtime.shutdown()
        emitter.shutdown.assert_called_once()
        assert len(runtime.scheduler) == 0

    def test_thread_lifecycle(self, emitter):
        rt = ExperienceRuntime(default_settings(), emitter=emitter)
        rt.start()
        assert rt.is_running is True
        assert rt.booted is True
        rt.shutdown()
        assert rt.is_running is False


class TestStatus:
    """Status snapshot and tracker"""

    def test_status_shape(self, runtime, clock):
        tick_at(runtime, clock, 0.1)
        status = runtime.status()
        assert set(status) == {'runtime', 'sequencer', 'subsystems', 'haptics', 'intro'}
        assert status['runtime']['scheduled'][0]['name'] == 'auto_start'
        assert status['haptics'] == {'sent': 0, 'enabled': True}
        assert len(status['subsystems']) == 3

    def test_phases(self, runtime):
        phases = runtime.phases()
        assert [p['phase'] for p in phases] == [1, 2, 3, 4, 5, 6]

    def test_events_broadcast_and_audited(self, runtime, clock, monkeypatch):
        socketio = Mock()
        audit = Mock()
        monkeypatch.setattr(reg, 'socketio', socketio)
        monkeypatch.setattr(reg, 'audit_log', audit)

        tick_at(runtime, clock, 0.1)
        runtime.submit('start')
        tick_at(runtime, clock, 0.2)
        tick_at(runtime, clock, 31.0)
        runtime.submit('stop')
        tick_at(runtime, clock, 32.0)

        names = [c[0][0] for c in socketio.emit.call_args_list]
        assert 'experience_started' in names
        assert 'experience_phase' in names
        assert 'experience_stopped' in names
        audited = [c[0][0] for c in audit.call_args_list]
        assert audited == ['experience_started', 'experience_stopped']

        history = runtime.status_tracker.get_history()
        assert [h['event'] for h in history] == ['started', 'phase_changed', 'stopped']

    def test_broadcast_rate_limited(self, monkeypatch):
        socketio = Mock()
        monkeypatch.setattr(reg, 'socketio', socketio)
        tracker = ExperienceStatusTracker(broadcast_hz=2.0)

        sent = [tracker.maybe_broadcast(i * 0.125, {'i': i}) for i in range(16)]
        assert sent == [True, False, False, False] * 4
        assert socketio.emit.call_count == 4
        assert tracker.last_status == {'i': 15}

    def test_broadcast_disabled(self, monkeypatch):
        socketio = Mock()
        monkeypatch.setattr(reg, 'socketio', socketio)
        tracker = ExperienceStatusTracker(broadcast_hz=0)
        assert tracker.maybe_broadcast(1.0, {}) is False
        socketio.emit.assert_not_called()

    def test_history_bounded(self):
        tracker = ExperienceStatusTracker()
        for i in range(80):
            tracker.on_event('phase_changed', {'from': i, 'to': i + 1})
        assert len(tracker.history) == ExperienceStatusTracker.MAX_HISTORY
        assert tracker.get_history(1)[0]['to'] == 80
