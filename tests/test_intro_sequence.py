"""
NDE - Intro Sequence Tests

Tests cover:
1. Stage order and timing (heartbeat, flatline, blackout, ascension)
2. Hand-off into the main timeline
3. Run-once guard and reset
"""

import pytest
import sys
import os
from unittest.mock import Mock

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.experience import ActionScheduler, ManualClock, PhaseSequencer, PhaseTable
from intro_sequence_module import IntroSequence
from star_field_module import StarFieldSubsystem
from visual_effects_module import VisualEffectsSubsystem


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def rig(clock):
    """Scheduler, sequencer, subsystems and intro wired like the runtime."""
    scheduler = ActionScheduler()
    sequencer = PhaseSequencer(PhaseTable(), clock, haptic_sink=Mock())
    visual = VisualEffectsSubsystem(clock)
    stars = StarFieldSubsystem(clock)
    sequencer.register(stars)
    sequencer.register(visual)
    sequencer.mark_initialized()
    intro = IntroSequence(scheduler, clock, sequencer, visual_effects=visual, star_field=stars)
    return scheduler, sequencer, visual, stars, intro


def run_until(clock, scheduler, until, step=0.1):
    while clock.now() + step < until:
        clock.advance(step)
        scheduler.run_due(clock.now())
    clock.set(until)
    scheduler.run_due(until)


class TestStages:
    """Stage order and effects"""

    def test_stage_timeline(self, clock, rig):
        scheduler, sequencer, visual, stars, intro = rig
        assert intro.begin() is True
        assert intro.stage == "heartbeat"

        run_until(clock, scheduler, 4.9)
        assert intro.stage == "heartbeat"
        run_until(clock, scheduler, 5.0)
        assert intro.stage == "flatline"
        run_until(clock, scheduler, 8.0)
        assert intro.stage == "blackout"
        run_until(clock, scheduler, 12.0)
        assert intro.stage == "ascension"
        assert sequencer.is_running is False

    def test_heartbeat_pitch_slows(self, clock, rig):
        scheduler, _, _, _, intro = rig
        intro.begin()
        assert intro.heartbeat_pitch() == pytest.approx(1.0)
        run_until(clock, scheduler, 2.5)
        assert intro.heartbeat_pitch() == pytest.approx(0.7)

    def test_flatline_flashes_white(self, clock, rig):
        scheduler, _, visual, _, intro = rig
        intro.begin()
        run_until(clock, scheduler, 5.0)
        clock.advance(0.25)
        assert visual.snapshot()["white_overlay"] == pytest.approx(1.0)

    def test_blackout_reaches_black(self, clock, rig):
        scheduler, _, visual, _, intro = rig
        intro.begin()
        run_until(clock, scheduler, 11.0)
        assert intro.stage == "blackout"
        assert visual.snapshot()["black_overlay"] == pytest.approx(1.0)

    def test_ascension_whites_out_and_tilts(self, clock, rig):
        scheduler, _, visual, stars, intro = rig
        intro.begin()
        run_until(clock, scheduler, 16.0)
        assert intro.stage == "ascension"
        assert intro.camera_tilt() == pytest.approx(15.0)
        assert stars.initialized is True
        snap = visual.snapshot()
        assert snap["white_overlay"] == pytest.approx(1.0)
        assert snap["black_overlay"] == pytest.approx(0.0)


class TestHandoff:
    """Hand-off into the main timeline"""

    def test_handoff_starts_at_phase_five(self, clock, rig):
        scheduler, sequencer, _, _, intro = rig
        intro.begin()
        run_until(clock, scheduler, 20.0)

        assert intro.finished is True
        assert intro.stage == "handoff"
        assert sequencer.is_running is True
        assert sequencer.current_phase == 5
        assert sequencer.state.start_instant == pytest.approx(clock.now() - 120.0)
        assert intro.camera_tilt() == pytest.approx(30.0)

    def test_handoff_phase_configurable(self, clock):
        scheduler = ActionScheduler()
        sequencer = PhaseSequencer(PhaseTable(), clock)
        sequencer.mark_initialized()
        intro = IntroSequence(scheduler, clock, sequencer, settings={
            "heartbeat_slowdown_duration": 0.0,
            "flatline_duration": 0.0,
            "blackout_duration": 0.0,
            "ascension_duration": 0.0,
            "handoff_phase": 2,
        })
        intro.begin()
        scheduler.run_due(clock.now())
        assert sequencer.current_phase == 2

    def test_handoff_refused_when_not_initialized(self, clock):
        scheduler = ActionScheduler()
        sequencer = PhaseSequencer(PhaseTable(), clock)
        intro = IntroSequence(scheduler, clock, sequencer, settings={"ascension_duration": 0.0})
        intro.begin()
        run_until(clock, scheduler, 12.5)
        assert intro.finished is True
        assert sequencer.is_running is False


class TestRunOnce:
    """Begin guard and reset"""

    def test_begin_twice_is_refused(self, rig):
        _, _, _, _, intro = rig
        assert intro.begin() is True
        assert intro.begin() is False

    def test_begin_stops_running_experience(self, clock, rig):
        _, sequencer, _, _, intro = rig
        sequencer.start()
        assert sequencer.is_running
        intro.begin()
        assert sequencer.is_running is False

    def test_reset_cancels_pending_stages(self, clock, rig):
        scheduler, sequencer, _, _, intro = rig
        intro.begin()
        run_until(clock, scheduler, 6.0)
        intro.reset()
        assert len(scheduler) == 0

        run_until(clock, scheduler, 30.0)
        assert sequencer.is_running is False
        assert intro.begin() is True

    def test_snapshot(self, clock, rig):
        _, _, _, _, intro = rig
        snap = intro.snapshot()
        assert snap["started"] is False
        assert snap["stage"] is None
        intro.begin()
        assert intro.snapshot()["stage"] == "heartbeat"
