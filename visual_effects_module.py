"""
VisualEffects Module - Post-processing and overlay parameters per phase

Publishes vignette, chromatic aberration, bloom, lens distortion,
depth-of-field and the white/black overlay alphas for the renderer.
Screen transitions used by the intro (flash, fade to black, black to
white) are clock-driven ramps, so they complete without further calls.
"""

from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Optional, Tuple
import logging
import math

from core.experience import FadeEnvelope, Subsystem, lerp, smoothstep

logger = logging.getLogger(__name__)

BLACK = (0.0, 0.0, 0.0)
WHITE = (1.0, 1.0, 1.0)
DUSK_VIOLET = (0.1, 0.05, 0.2)


def lerp_color(a, b, t: float) -> Tuple[float, ...]:
    return tuple(round(lerp(x, y, t), 4) for x, y in zip(a, b))


@dataclass
class VisualParams:
    vignette_intensity: float = 0.2
    vignette_color: Tuple[float, ...] = BLACK
    chromatic_aberration: float = 0.0
    bloom_intensity: float = 0.0
    bloom_threshold: float = 0.8
    lens_distortion: float = 0.0
    dof_active: bool = False
    dof_focus_distance: float = 10.0
    dof_aperture: float = 1.0
    white_overlay: float = 0.0
    black_overlay: float = 0.0
    overlay_pulse_speed: float = 0.5
    overlay_pulse_amount: float = 0.1


# Float parameters ramped to zero by fade_out()
FADED_PARAMS = (
    "vignette_intensity",
    "chromatic_aberration",
    "bloom_intensity",
    "lens_distortion",
    "white_overlay",
    "black_overlay",
)


@dataclass
class Ramp:
    """Chain of envelopes played back to back for one parameter."""
    stages: List[FadeEnvelope] = field(default_factory=list)

    def value(self, now: float) -> float:
        for stage in self.stages:
            if not stage.is_complete(now):
                return stage.value(now)
        return self.stages[-1].end_value

    def is_complete(self, now: float) -> bool:
        return all(stage.is_complete(now) for stage in self.stages)


class VisualEffectsSubsystem(Subsystem):
    """Post-processing controller driven by the phase sequencer."""

    name = "visual_effects"

    def __init__(self, clock, settings: Optional[Dict[str, Any]] = None):
        super().__init__(clock)
        settings = settings or {}
        self.effect_intensity = max(0.0, min(1.0, float(settings.get("effect_intensity", 0.8))))
        self.effect_speed = max(0.1, min(2.0, float(settings.get("effect_speed", 1.0))))
        self.reduce_effects_for_vr = bool(settings.get("reduce_effects_for_vr", True))

        self.params = VisualParams()
        self.initialized = False
        self._ramps: Dict[str, Ramp] = {}
        self._fade_out: Optional[FadeEnvelope] = None
        self._fade_from: Dict[str, float] = {}

    # ─────────────────────────────────────────────────────────
    # Subsystem contract
    # ─────────────────────────────────────────────────────────

    def initialize(self) -> None:
        self.reset_all_effects()
        self.initialized = True

    def reset_all_effects(self) -> None:
        self.params = VisualParams()
        self._ramps.clear()
        self._fade_out = None
        self._fade_from = {}

    def update(self, phase: int, progress: float) -> None:
        if not self.initialized:
            return
        p = max(0.0, min(1.0, progress))
        handler = getattr(self, f"_phase{phase}", None)
        if handler is None:
            return
        # Phase curves take over from any screen transition
        self._ramps.clear()
        handler(p)

    def fade_out(self, duration: float) -> None:
        now = self.clock.now()
        current = self.current()
        self._fade_from = {key: getattr(current, key) for key in FADED_PARAMS}
        self._ramps.clear()
        self._fade_out = FadeEnvelope(1.0, 0.0, duration, now, eased=True)
        self.params.dof_active = False
        logger.debug(f"Visual effects fading out over {duration:.1f}s")

    # ─────────────────────────────────────────────────────────
    # Phase curves
    # ─────────────────────────────────────────────────────────

    def _phase1(self, p: float) -> None:
        v = self.params
        v.vignette_intensity = 0.2 + p * 0.1
        v.vignette_color = BLACK
        v.chromatic_aberration = p * 0.05 * self.effect_intensity
        v.bloom_intensity = 0.0
        v.lens_distortion = 0.0
        v.white_overlay = 0.0
        v.black_overlay = 0.0

    def _phase2(self, p: float) -> None:
        v = self.params
        vr = self.reduce_effects_for_vr
        v.vignette_intensity = 0.3 + p * 0.2
        v.vignette_color = lerp_color(BLACK, DUSK_VIOLET, p)
        v.chromatic_aberration = p * (0.2 if vr else 0.4) * self.effect_intensity
        v.bloom_intensity = p * 0.3 * self.effect_intensity
        v.bloom_threshold = lerp(0.8, 0.7, p)
        v.lens_distortion = p * (0.1 if vr else 0.2) * self.effect_intensity
        v.white_overlay = 0.0
        v.black_overlay = 0.0

    def _phase3(self, p: float) -> None:
        v = self.params
        vr = self.reduce_effects_for_vr
        v.vignette_intensity = 0.5 + p * 0.2
        v.vignette_color = DUSK_VIOLET
        v.chromatic_aberration = (0.2 + p * 0.4) * (0.4 if vr else 0.6) * self.effect_intensity
        v.bloom_intensity = (0.3 + p * 0.5) * self.effect_intensity
        v.bloom_threshold = lerp(0.7, 0.5, p)
        distortion = (0.2 + p * 0.3) * (0.2 if vr else 0.3) * self.effect_intensity
        distortion += math.sin(self.clock.now() * self.effect_speed) * 0.05 * p
        v.lens_distortion = distortion
        v.black_overlay = p * 0.1

    def _phase4(self, p: float) -> None:
        v = self.params
        vr = self.reduce_effects_for_vr
        v.vignette_intensity = lerp(0.7, 0.5, p)
        v.vignette_color = lerp_color(DUSK_VIOLET, WHITE, p)
        if p < 0.8:
            curve = lerp(0.6, 1.0, p / 0.8)
        else:
            curve = lerp(1.0, 0.3, (p - 0.8) / 0.2)
        v.chromatic_aberration = (0.5 if vr else 0.8) * curve * self.effect_intensity
        v.bloom_intensity = lerp(0.8, 2.0, p) * self.effect_intensity
        v.bloom_threshold = lerp(0.5, 0.3, p)
        wave = math.sin(p * 2.0 * math.pi) * 0.5 + 0.5
        v.lens_distortion = (0.3 if vr else 0.5) * wave * self.effect_intensity

        # depth of field stays off in VR
        if not vr and p > 0.7:
            dof = (p - 0.7) / 0.3
            v.dof_active = True
            v.dof_focus_distance = lerp(10.0, 0.1, dof)
            v.dof_aperture = lerp(1.0, 5.0, dof)
        else:
            v.dof_active = False

        v.white_overlay = (p - 0.8) / 0.2 * 0.3 if p > 0.8 else 0.0
        v.overlay_pulse_speed = 1.0 * self.effect_speed
        v.overlay_pulse_amount = 0.2 * self.effect_intensity

    def _phase5(self, p: float) -> None:
        v = self.params
        if p < 0.05:
            v.chromatic_aberration = 0.0
            v.bloom_intensity = 0.0
            v.lens_distortion = 0.0
            v.vignette_intensity = 0.0
            v.dof_active = False
            v.white_overlay = 0.0
            v.black_overlay = 0.0
            return
        v.vignette_intensity = lerp(0.5, 0.0, p)
        v.vignette_color = WHITE
        v.chromatic_aberration = lerp(0.3, 0.0, p)
        if p > 0.5:
            v.bloom_intensity = lerp(5.0, 3.0, (p - 0.5) * 2.0)
        else:
            v.bloom_intensity = lerp(2.0, 5.0, p * 0.5)
        v.bloom_threshold = lerp(0.3, 0.1, p)
        v.lens_distortion = lerp(0.2, 0.0, p)
        v.white_overlay = lerp(0.3, 1.0, smoothstep(p))
        v.overlay_pulse_speed = lerp(1.0, 0.5, p) * self.effect_speed
        v.overlay_pulse_amount = lerp(0.2, 0.1, p) * self.effect_intensity

    def _phase6(self, p: float) -> None:
        v = self.params
        v.vignette_intensity = 0.0
        v.chromatic_aberration = 0.0
        v.bloom_intensity = lerp(3.0, 0.0, p)
        v.bloom_threshold = lerp(0.1, 0.8, p)
        v.lens_distortion = 0.0
        v.dof_active = False
        v.white_overlay = lerp(1.0, 0.0, p)

    # ─────────────────────────────────────────────────────────
    # Screen transitions
    # ─────────────────────────────────────────────────────────

    def _ramp(self, key: str, *stages: Tuple[float, float, float]) -> None:
        """Install a ramp for key from (start, end, duration) stages."""
        self._fade_out = None
        t = self.clock.now()
        envelopes = []
        for start, end, duration in stages:
            envelopes.append(FadeEnvelope(start, end, duration, t, eased=True))
            t += duration
        self._ramps[key] = Ramp(envelopes)

    def flash_screen(self, color: Tuple[float, float, float] = WHITE, duration: float = 0.5) -> None:
        """Flash an overlay up to full and back down over duration."""
        key = "black_overlay" if tuple(color) == BLACK else "white_overlay"
        half = max(0.0, duration) / 2.0
        self._ramp(key, (0.0, 1.0, half), (1.0, 0.0, half))
        logger.debug(f"Flash {key} over {duration:.2f}s")

    def fade_to_black(self, duration: float) -> None:
        self._ramp("black_overlay", (self.current().black_overlay, 1.0, duration))

    def fade_from_black_to_white(self, duration: float) -> None:
        self._ramp("black_overlay", (self.current().black_overlay, 0.0, duration))
        self._ramp("white_overlay", (self.current().white_overlay, 1.0, duration))

    # ─────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────

    def is_fading(self) -> bool:
        now = self.clock.now()
        if self._fade_out is not None and not self._fade_out.is_complete(now):
            return True
        return any(not ramp.is_complete(now) for ramp in self._ramps.values())

    def current(self) -> VisualParams:
        """Parameters with active ramps and fade-out applied."""
        now = self.clock.now()
        if self._fade_out is not None:
            if self._fade_out.is_complete(now):
                return VisualParams()
            values = asdict(self.params)
            scale = self._fade_out.value(now)
            for key, start in self._fade_from.items():
                values[key] = start * scale
            return VisualParams(**values)
        if not self._ramps:
            return self.params
        values = asdict(self.params)
        for key, ramp in self._ramps.items():
            values[key] = ramp.value(now)
        return VisualParams(**values)

    def snapshot(self) -> Dict[str, Any]:
        params = asdict(self.current())
        params["vignette_color"] = list(params["vignette_color"])
        params.update({
            "name": self.name,
            "initialized": self.initialized,
            "fading": self.is_fading(),
        })
        return params
