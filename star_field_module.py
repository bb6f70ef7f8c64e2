"""
StarField Module - Star field control parameters per phase

Computes the star field's aggregate control parameters (center light,
star alpha, emission, size, twinkle, vortex and pull) from the
sequencer's (phase, progress). Geometry and materials belong to the
renderer; this module only publishes the numbers it should use.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Tuple
import logging

from core.experience import FadeEnvelope, Subsystem, lerp

logger = logging.getLogger(__name__)

WHITE = (1.0, 1.0, 1.0)
WARM_WHITE = (1.0, 0.9, 0.8)
SOFT_WHITE = (1.0, 0.95, 0.9)

DEFAULT_LIGHT_RANGE = 15.0
WIDE_LIGHT_RANGE = 50.0


def lerp_color(a: Tuple[float, float, float], b: Tuple[float, float, float], t: float) -> Tuple[float, ...]:
    return tuple(round(lerp(x, y, t), 4) for x, y in zip(a, b))


@dataclass
class StarFieldParams:
    light_intensity: float = 0.0
    light_range: float = DEFAULT_LIGHT_RANGE
    light_color: Tuple[float, ...] = WHITE
    star_alpha: float = 1.0
    emission: float = 1.5
    size_multiplier: float = 1.0
    twinkle_multiplier: float = 0.5
    vortex_rate: float = 0.0
    center_pull: float = 0.0


class StarFieldSubsystem(Subsystem):
    """Star field driven by the phase sequencer."""

    name = "star_field"

    # Parameters faded to zero by fade_out()
    FADED = ("star_alpha", "emission", "light_intensity")

    def __init__(self, clock, settings: Optional[Dict[str, Any]] = None):
        super().__init__(clock)
        settings = settings or {}
        self.twinkle_amount = float(settings.get("twinkle_amount", 0.3))
        self.vortex_strength = float(settings.get("vortex_strength", 0.5))
        self.center_pull = float(settings.get("center_pull", 0.5))
        self.emission_intensity = float(settings.get("emission_intensity", 1.5))

        self.params = StarFieldParams(emission=self.emission_intensity)
        self.initialized = False
        self._fades: Dict[str, FadeEnvelope] = {}

    def initialize(self) -> None:
        self._fades.clear()
        self.params = StarFieldParams(emission=self.emission_intensity)
        self.initialized = True

    def update(self, phase: int, progress: float) -> None:
        if not self.initialized:
            return
        p = max(0.0, min(1.0, progress))
        params = self.params
        base = self.emission_intensity

        if phase == 1:
            params.light_intensity = lerp(0.0, 0.2, p)
            params.light_color = WHITE
            params.twinkle_multiplier = 0.5
            params.vortex_rate = 0.0
            params.center_pull = 0.0

        elif phase == 2:
            params.light_intensity = lerp(0.2, 1.0, p)
            params.light_color = WHITE
            params.twinkle_multiplier = 0.7
            params.center_pull = 0.01 * p

        elif phase == 3:
            params.light_intensity = lerp(1.0, 3.0, p)
            params.light_color = lerp_color(WHITE, WARM_WHITE, p)
            params.vortex_rate = 0.5 * self.vortex_strength * p
            params.center_pull = p * self.center_pull * 0.001
            params.size_multiplier = 1.0 + 0.2 * p
            params.twinkle_multiplier = 1.0 + p

        elif phase == 4:
            params.light_intensity = lerp(3.0, 8.0, p)
            params.light_color = lerp_color(WARM_WHITE, SOFT_WHITE, p)
            params.vortex_rate = self.vortex_strength * (1.0 + p)
            params.center_pull = self.center_pull * 0.003 * (1.0 + p * 2.0)
            params.size_multiplier = 1.0 + p
            params.twinkle_multiplier = 1.0 + 2.0 * p
            params.emission = base * (1.0 + p)

        elif phase == 5:
            # bright swell, then dissolve
            if p < 0.5:
                n = p * 2.0
                params.size_multiplier = 1.0 + n * 2.0
                params.emission = base * (2.0 + n * 3.0)
                params.star_alpha = 1.0
                params.light_intensity = lerp(8.0, 12.0, p * 0.5)
            else:
                n = (p - 0.5) * 2.0
                params.size_multiplier = lerp(3.0, 0.5, n)
                params.emission = lerp(5.0, 0.0, n)
                params.star_alpha = 1.0 - n
                params.light_intensity = lerp(12.0, 6.0, n)
            params.light_color = WHITE
            params.light_range = lerp(DEFAULT_LIGHT_RANGE, WIDE_LIGHT_RANGE, p)

        elif phase == 6:
            params.star_alpha = 1.0 - p
            params.emission = (1.0 - p) * 0.5
            params.light_intensity = lerp(6.0, 0.0, p)
            params.light_color = WHITE
            params.light_range = lerp(WIDE_LIGHT_RANGE, DEFAULT_LIGHT_RANGE, p)
            params.size_multiplier = lerp(params.size_multiplier, 1.0, p * 0.1)

    def fade_out(self, duration: float) -> None:
        now = self.clock.now()
        for key in self.FADED:
            self._fades[key] = FadeEnvelope(getattr(self.params, key), 0.0, duration, now, eased=False)
        logger.debug(f"Star field fading out over {duration:.1f}s")

    def is_fading(self) -> bool:
        now = self.clock.now()
        return any(not fade.is_complete(now) for fade in self._fades.values())

    def current(self) -> StarFieldParams:
        """Parameters with any active fade applied."""
        if not self._fades:
            return self.params
        now = self.clock.now()
        values = asdict(self.params)
        for key, fade in self._fades.items():
            values[key] = fade.value(now)
        return StarFieldParams(**values)

    def snapshot(self) -> Dict[str, Any]:
        params = asdict(self.current())
        params["light_color"] = list(params["light_color"])
        params.update({
            "name": self.name,
            "initialized": self.initialized,
            "fading": self.is_fading(),
        })
        return params
