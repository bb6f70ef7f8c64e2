"""
NDE - Output Subsystem Tests

Tests cover:
1. Star field per-phase parameters and fade-out
2. Visual effects curves, screen transitions and fade-out reset
3. Spatial audio volume envelope, filters and seeded movement
"""

import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.experience import ManualClock, Subsystem
from star_field_module import StarFieldSubsystem
from visual_effects_module import VisualEffectsSubsystem, VisualParams
from spatial_audio_module import SpatialAudioSubsystem


@pytest.fixture
def clock():
    return ManualClock()


class TestContract:
    """All subsystems implement the contract"""

    @pytest.mark.parametrize("cls", [StarFieldSubsystem, VisualEffectsSubsystem, SpatialAudioSubsystem])
    def test_is_subsystem(self, cls, clock):
        sub = cls(clock)
        assert isinstance(sub, Subsystem)
        assert sub.snapshot()["name"] == sub.name

    @pytest.mark.parametrize("cls", [StarFieldSubsystem, VisualEffectsSubsystem, SpatialAudioSubsystem])
    def test_update_before_initialize_is_ignored(self, cls, clock):
        sub = cls(clock)
        before = sub.snapshot()
        sub.update(4, 0.5)
        assert sub.snapshot() == before


class TestStarField:
    """Star field parameters"""

    def test_phase_one_light_ramp(self, clock):
        stars = StarFieldSubsystem(clock)
        stars.initialize()
        stars.update(1, 0.5)
        assert stars.snapshot()["light_intensity"] == pytest.approx(0.1)

    def test_peak_brightens(self, clock):
        stars = StarFieldSubsystem(clock)
        stars.initialize()
        stars.update(4, 1.0)
        snap = stars.snapshot()
        assert snap["light_intensity"] == pytest.approx(8.0)
        assert snap["emission"] == pytest.approx(3.0)

    def test_whiteout_dissolves_stars(self, clock):
        stars = StarFieldSubsystem(clock)
        stars.initialize()
        stars.update(5, 0.75)
        assert stars.snapshot()["star_alpha"] == pytest.approx(0.5)

    def test_settings_scale_vortex(self, clock):
        stars = StarFieldSubsystem(clock, {"vortex_strength": 1.0})
        stars.initialize()
        stars.update(4, 0.0)
        assert stars.snapshot()["vortex_rate"] == pytest.approx(1.0)

    def test_fade_out_completes_without_update(self, clock):
        stars = StarFieldSubsystem(clock)
        stars.initialize()
        stars.update(4, 0.5)
        stars.fade_out(2.0)

        clock.advance(1.0)
        mid = stars.snapshot()
        assert 0.0 < mid["light_intensity"] < 5.5
        assert mid["fading"] is True

        clock.advance(1.0)
        end = stars.snapshot()
        assert end["light_intensity"] == 0.0
        assert end["star_alpha"] == 0.0
        assert end["emission"] == 0.0
        assert end["fading"] is False

    def test_initialize_cancels_fade(self, clock):
        stars = StarFieldSubsystem(clock)
        stars.initialize()
        stars.fade_out(2.0)
        stars.initialize()
        clock.advance(5.0)
        assert stars.snapshot()["star_alpha"] == 1.0


class TestVisualEffects:
    """Post-processing parameters"""

    def test_vr_mode_reduces_aberration(self, clock):
        vr = VisualEffectsSubsystem(clock, {"reduce_effects_for_vr": True, "effect_intensity": 1.0})
        flat = VisualEffectsSubsystem(clock, {"reduce_effects_for_vr": False, "effect_intensity": 1.0})
        for fx in (vr, flat):
            fx.initialize()
            fx.update(2, 1.0)
        assert vr.snapshot()["chromatic_aberration"] == pytest.approx(0.2)
        assert flat.snapshot()["chromatic_aberration"] == pytest.approx(0.4)

    def test_depth_of_field_only_outside_vr(self, clock):
        vr = VisualEffectsSubsystem(clock, {"reduce_effects_for_vr": True})
        flat = VisualEffectsSubsystem(clock, {"reduce_effects_for_vr": False})
        for fx in (vr, flat):
            fx.initialize()
            fx.update(4, 0.85)
        assert vr.snapshot()["dof_active"] is False
        assert flat.snapshot()["dof_active"] is True

    def test_whiteout_start_clears_effects(self, clock):
        fx = VisualEffectsSubsystem(clock)
        fx.initialize()
        fx.update(4, 0.95)
        fx.update(5, 0.01)
        snap = fx.snapshot()
        assert snap["bloom_intensity"] == 0.0
        assert snap["vignette_intensity"] == 0.0
        assert snap["white_overlay"] == 0.0

    def test_whiteout_end_is_white(self, clock):
        fx = VisualEffectsSubsystem(clock)
        fx.initialize()
        fx.update(5, 1.0)
        assert fx.snapshot()["white_overlay"] == pytest.approx(1.0)

    def test_fade_out_resets_to_defaults(self, clock):
        fx = VisualEffectsSubsystem(clock)
        fx.initialize()
        fx.update(5, 0.8)
        fx.fade_out(2.0)

        clock.advance(1.0)
        assert fx.is_fading()
        assert 0.0 < fx.snapshot()["white_overlay"] < 1.0

        clock.advance(1.0)
        assert fx.current() == VisualParams()

    def test_flash_screen(self, clock):
        fx = VisualEffectsSubsystem(clock)
        fx.initialize()
        fx.flash_screen((1.0, 1.0, 1.0), 0.5)
        clock.advance(0.25)
        assert fx.snapshot()["white_overlay"] == pytest.approx(1.0)
        clock.advance(0.25)
        assert fx.snapshot()["white_overlay"] == pytest.approx(0.0)

    def test_fade_to_black_holds(self, clock):
        fx = VisualEffectsSubsystem(clock)
        fx.initialize()
        fx.fade_to_black(1.5)
        clock.advance(4.0)
        assert fx.snapshot()["black_overlay"] == 1.0

    def test_black_to_white(self, clock):
        fx = VisualEffectsSubsystem(clock)
        fx.initialize()
        fx.fade_to_black(0.0)
        fx.fade_from_black_to_white(3.0)
        clock.advance(3.0)
        snap = fx.snapshot()
        assert snap["black_overlay"] == 0.0
        assert snap["white_overlay"] == 1.0

    def test_phase_update_replaces_transition(self, clock):
        fx = VisualEffectsSubsystem(clock)
        fx.initialize()
        fx.fade_to_black(1.0)
        fx.update(1, 0.5)
        assert fx.snapshot()["black_overlay"] == 0.0


class TestSpatialAudio:
    """Audio envelope and movement"""

    def test_fades_in_from_silence(self, clock):
        audio = SpatialAudioSubsystem(clock, {"master_volume": 0.8, "fade_in_duration": 2.0})
        audio.initialize()
        assert audio.volume() == 0.0
        clock.advance(1.0)
        assert audio.volume() == pytest.approx(0.4)
        clock.advance(1.0)
        assert audio.volume() == pytest.approx(0.8)

    def test_fade_out_stops_playback(self, clock):
        audio = SpatialAudioSubsystem(clock)
        audio.initialize()
        clock.advance(5.0)
        audio.fade_out(2.0)
        clock.advance(2.0)
        assert audio.volume() == 0.0
        assert audio.is_playing is False

    def test_fade_out_zero_uses_configured_duration(self, clock):
        audio = SpatialAudioSubsystem(clock, {"fade_out_duration": 10.0})
        audio.initialize()
        clock.advance(5.0)
        audio.fade_out(0.0)
        clock.advance(5.0)
        assert audio.is_fading()
        assert 0.0 < audio.volume() < 1.0

    def test_whiteout_silence_then_swell(self, clock):
        audio = SpatialAudioSubsystem(clock)
        audio.initialize()
        clock.advance(5.0)
        audio.update(5, 0.02)
        assert audio.volume() == 0.0
        audio.update(5, 0.5)
        assert audio.volume() == pytest.approx(1.0)

    def test_low_pass_follows_amount(self, clock):
        audio = SpatialAudioSubsystem(clock, {"low_pass_amount": 1.0})
        audio.initialize()
        audio.update(2, 1.0)
        snap = audio.snapshot()
        assert snap["low_pass_enabled"] is True
        assert snap["low_pass_cutoff"] == pytest.approx(10000.0)
        assert snap["reverb_preset"] == "arena"

    def test_pitch_fixed_when_shifting_disabled(self, clock):
        audio = SpatialAudioSubsystem(clock, {"enable_pitch_shifting": False})
        audio.initialize()
        audio.update(4, 0.9)
        assert audio.snapshot()["pitch"] == 1.0

    def test_random_movement_reproducible_with_seed(self):
        positions = []
        for _ in range(2):
            clock = ManualClock()
            audio = SpatialAudioSubsystem(clock, {"seed": 42})
            audio.initialize()
            trace = []
            for step in range(40):
                clock.advance(0.1)
                audio.update(3, step / 40.0)
                trace.append(audio.snapshot()["position"])
            positions.append(trace)
        assert positions[0] == positions[1]
        assert positions[0][0] != positions[0][-1]

    def test_receding_in_ending(self, clock):
        audio = SpatialAudioSubsystem(clock)
        audio.initialize()
        audio.update(6, 1.0)
        snap = audio.snapshot()
        assert snap["movement"] == "receding"
        assert snap["position"] == [0.0, 0.0, 15.0]
