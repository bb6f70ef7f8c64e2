"""
SpatialAudio Module - Volume, pitch, filters, reverb and source movement

Publishes the control parameters of the single spatialized audio source:
volume envelope, pitch, low/high-pass cutoffs, reverb preset and room
level, and the source position. Movement patterns are functions of the
injected clock, so a run is reproducible under a ManualClock and a fixed
seed.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple
import logging
import math
import random

from core.experience import FadeEnvelope, Subsystem, lerp

logger = logging.getLogger(__name__)

Vec3 = Tuple[float, float, float]

INITIAL_POSITION: Vec3 = (0.0, 0.0, 5.0)
LOW_PASS_OPEN = 22000.0
HIGH_PASS_OPEN = 10.0
ROOM_OFF = -10000.0

# Movement cycle lengths in seconds
CIRCLE_PERIOD = 5.0
SPIRAL_PERIOD = 5.0
SURROUND_PERIOD = 8.0


def lerp_vec(a: Vec3, b: Vec3, t: float) -> Vec3:
    return (lerp(a[0], b[0], t), lerp(a[1], b[1], t), lerp(a[2], b[2], t))


@dataclass
class AudioParams:
    pitch: float = 1.0
    low_pass_enabled: bool = False
    low_pass_cutoff: float = LOW_PASS_OPEN
    high_pass_enabled: bool = False
    high_pass_cutoff: float = HIGH_PASS_OPEN
    reverb_enabled: bool = False
    reverb_preset: str = "off"
    reverb_room: float = ROOM_OFF
    reverb_room_hf: float = ROOM_OFF
    movement: str = "fixed"
    position: Vec3 = INITIAL_POSITION


class SpatialAudioSubsystem(Subsystem):
    """Spatial audio source driven by the phase sequencer."""

    name = "spatial_audio"

    def __init__(self, clock, settings: Optional[Dict[str, Any]] = None):
        super().__init__(clock)
        settings = settings or {}
        self.master_volume = max(0.0, min(10.0, float(settings.get("master_volume", 1.0))))
        self.fade_in_duration = float(settings.get("fade_in_duration", 2.0))
        self.fade_out_duration = float(settings.get("fade_out_duration", 10.0))
        self.enable_pitch_shifting = bool(settings.get("enable_pitch_shifting", True))
        self.low_pass_amount = max(0.0, min(1.0, float(settings.get("low_pass_amount", 0.5))))
        self.seed = int(settings.get("seed", 7))

        self.params = AudioParams()
        self.is_playing = False
        self._fade_in: Optional[FadeEnvelope] = None
        self._fade_out: Optional[FadeEnvelope] = None
        self._volume_override: Optional[float] = None

        self._rng = random.Random(self.seed)
        self._wander_target: Vec3 = INITIAL_POSITION
        self._wander_next_change = 0.0
        self._last_update: Optional[float] = None

    # ─────────────────────────────────────────────────────────
    # Subsystem contract
    # ─────────────────────────────────────────────────────────

    def initialize(self) -> None:
        """Reset the source and fade the volume in from silence."""
        now = self.clock.now()
        self.params = AudioParams()
        self._fade_out = None
        self._volume_override = None
        self._fade_in = FadeEnvelope(0.0, self.master_volume, self.fade_in_duration, now, eased=True)
        self._rng = random.Random(self.seed)
        self._wander_target = INITIAL_POSITION
        self._wander_next_change = now
        self._last_update = None
        self.is_playing = True
        logger.debug(f"Audio started, fading in over {self.fade_in_duration:.1f}s")

    def fade_out(self, duration: float) -> None:
        if not self.is_playing:
            return
        use_duration = duration if duration > 0 else self.fade_out_duration
        now = self.clock.now()
        self._fade_out = FadeEnvelope(self.volume(), 0.0, use_duration, now, eased=True)
        logger.debug(f"Audio fading out over {use_duration:.1f}s")

    def update(self, phase: int, progress: float) -> None:
        if not self.is_playing or self._fade_out is not None:
            return
        p = max(0.0, min(1.0, progress))
        now = self.clock.now()
        dt = 0.0 if self._last_update is None else max(0.0, now - self._last_update)
        self._last_update = now

        handler = getattr(self, f"_phase{phase}", None)
        if handler is not None:
            handler(p, now, dt)

    # ─────────────────────────────────────────────────────────
    # Phase curves
    # ─────────────────────────────────────────────────────────

    def _set_pitch(self, value: float) -> None:
        if self.enable_pitch_shifting:
            self.params.pitch = value

    def _phase1(self, p: float, now: float, dt: float) -> None:
        a = self.params
        self._volume_override = None
        a.movement = "fixed"
        a.position = INITIAL_POSITION
        self._set_pitch(1.0)
        a.low_pass_enabled = False
        a.high_pass_enabled = False
        if p > 0.2:
            a.reverb_enabled = True
            a.reverb_preset = "mountains"
            a.reverb_room = lerp(-10000.0, -1000.0, p)
            a.reverb_room_hf = lerp(-10000.0, -800.0, p)

    def _phase2(self, p: float, now: float, dt: float) -> None:
        a = self.params
        self._volume_override = None
        radius = 2.0 + p
        cycle = (now % CIRCLE_PERIOD) / CIRCLE_PERIOD
        angle = cycle * 0.5 * 2.0 * math.pi
        a.movement = "circle"
        a.position = (math.cos(angle) * radius, 0.0, math.sin(angle) * radius)
        self._set_pitch(1.0 + math.sin(now * 0.2) * 0.05 * p)
        a.low_pass_enabled = True
        a.low_pass_cutoff = lerp(22000.0, 10000.0, p * self.low_pass_amount)
        a.reverb_enabled = True
        a.reverb_preset = "arena"
        a.reverb_room = -1000.0
        a.reverb_room_hf = -500.0

    def _phase3(self, p: float, now: float, dt: float) -> None:
        a = self.params
        self._volume_override = None
        max_distance = 3.0 + p * 2.0
        intensity = 0.5 + p * 0.5
        if now >= self._wander_next_change:
            self._wander_target = self._random_target(max_distance * intensity)
            self._wander_next_change = now + self._rng.uniform(0.3, 0.8)
        a.movement = "random"
        a.position = lerp_vec(a.position, self._wander_target, dt * 3.0)

        pitch = lerp(1.0, 0.9, p * 0.5) + math.sin(now * 0.5) * 0.1 * p
        self._set_pitch(pitch)
        a.low_pass_enabled = True
        a.low_pass_cutoff = lerp(10000.0, 5000.0, p * self.low_pass_amount)
        a.high_pass_enabled = True
        a.high_pass_cutoff = lerp(10.0, 150.0, p * 0.3)
        a.reverb_enabled = True
        a.reverb_preset = "padded_cell"
        a.reverb_room = lerp(-1000.0, -2000.0, p)
        a.reverb_room_hf = -500.0

    def _random_target(self, distance: float) -> Vec3:
        x = self._rng.uniform(-1.0, 1.0)
        y = self._rng.uniform(-0.5, 0.5)
        z = self._rng.uniform(-1.0, 1.0)
        norm = math.sqrt(x * x + y * y + z * z) or 1.0
        return (x / norm * distance, y / norm * distance, z / norm * distance)

    def _phase4(self, p: float, now: float, dt: float) -> None:
        a = self.params
        self._volume_override = None
        cycle = (now % SPIRAL_PERIOD) / SPIRAL_PERIOD
        radius = lerp(5.0, 0.5, cycle)
        angle = cycle * 3.0 * 2.0 * math.pi
        a.movement = "spiral"
        a.position = (math.cos(angle) * radius, lerp(1.0, 0.0, cycle), math.sin(angle) * radius)

        self._set_pitch(lerp(0.9, 0.8, p) + math.sin(now) * 0.1 * p)
        a.low_pass_enabled = True
        if p < 0.8:
            a.low_pass_cutoff = lerp(5000.0, 1000.0, p)
        else:
            a.low_pass_cutoff = lerp(1000.0, 10000.0, (p - 0.8) / 0.2)
        a.high_pass_enabled = True
        a.high_pass_cutoff = lerp(150.0, 50.0, p)
        a.reverb_enabled = True
        if p < 0.9:
            a.reverb_preset = "cave"
            a.reverb_room = lerp(-2000.0, 0.0, p)
        else:
            a.reverb_preset = "auditorium"
            a.reverb_room = 0.0

    def _phase5(self, p: float, now: float, dt: float) -> None:
        a = self.params
        # silence at the whiteout boundary, then a quick swell back
        if p < 0.05:
            self._volume_override = 0.0
            return
        if p < 0.1:
            self._volume_override = lerp(0.0, self.master_volume, (p - 0.05) * 20.0)
        else:
            self._volume_override = self.master_volume

        cycle = (now % SURROUND_PERIOD) / SURROUND_PERIOD
        angle = cycle * 2.0 * 2.0 * math.pi
        height = lerp(0.0, 2.0, p) * math.sin(cycle * math.pi)
        a.movement = "surround"
        a.position = (math.cos(angle) * 3.0, height, math.sin(angle) * 3.0)

        self._set_pitch(lerp(1.0, 1.1, p))
        a.low_pass_enabled = True
        a.low_pass_cutoff = lerp(10000.0, 22000.0, p)
        a.high_pass_enabled = False
        a.reverb_enabled = True
        a.reverb_preset = "auditorium"
        a.reverb_room = 0.0
        a.reverb_room_hf = 0.0

    def _phase6(self, p: float, now: float, dt: float) -> None:
        a = self.params
        self._volume_override = None
        a.movement = "receding"
        a.position = lerp_vec((0.0, 2.0, 3.0), (0.0, 0.0, 5.0 + p * 10.0), p)
        self._set_pitch(lerp(1.1, 1.0, p))
        a.low_pass_enabled = True
        a.low_pass_cutoff = LOW_PASS_OPEN
        a.high_pass_enabled = False
        a.reverb_enabled = True
        a.reverb_preset = "mountains"
        a.reverb_room = lerp(0.0, -10000.0, p)
        a.reverb_room_hf = lerp(0.0, -10000.0, p)

    # ─────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────

    def volume(self) -> float:
        now = self.clock.now()
        if self._fade_out is not None:
            value = self._fade_out.value(now)
            if self._fade_out.is_complete(now):
                self.is_playing = False
            return value
        if not self.is_playing:
            return 0.0
        if self._volume_override is not None:
            return self._volume_override
        if self._fade_in is not None:
            return self._fade_in.value(now)
        return self.master_volume

    def is_fading(self) -> bool:
        return self._fade_out is not None and not self._fade_out.is_complete(self.clock.now())

    def snapshot(self) -> Dict[str, Any]:
        params = asdict(self.params)
        params["position"] = [round(v, 4) for v in params["position"]]
        volume = self.volume()
        params.update({
            "name": self.name,
            "playing": self.is_playing,
            "volume": round(volume, 4),
            "fading": self.is_fading(),
        })
        return params
