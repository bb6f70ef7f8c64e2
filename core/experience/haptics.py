"""
Haptic Profile - Phase/progress to vibration parameters

Maps the sequencer's (phase, progress) sample to the HapticFrame sent to
the vibration device. The curves rise through the collapse and peak
phases, go silent at the start of the whiteout and die away during the
ending.
"""

import math

from .types import HapticFrame


def _hash01(n: int) -> float:
    """Deterministic pseudo-random value in [0, 1) for an integer lattice point."""
    n = (n << 13) ^ n
    n = (n * (n * n * 15731 + 789221) + 1376312589) & 0x7FFFFFFF
    return n / 2147483648.0


def value_noise(x: float) -> float:
    """Smooth 1-D value noise in [0, 1]."""
    i = math.floor(x)
    f = x - i
    u = f * f * (3.0 - 2.0 * f)
    a = _hash01(int(i))
    b = _hash01(int(i) + 1)
    return a + (b - a) * u


def haptic_frame_for(phase: int, progress: float, t: float = 0.0) -> HapticFrame:
    """
    Compute the haptic frame for one tick.

    Args:
        phase: Current phase (1..6); other values yield a zero frame
        progress: Position within the phase (0..1)
        t: Clock reading in seconds, drives the collapse-phase jitter

    Returns:
        HapticFrame with both values clamped to [0, 1]
    """
    p = max(0.0, min(1.0, progress))
    intensity = 0.0
    frequency = 0.0

    if phase == 1:
        intensity = min(0.1, p * 0.1)
        frequency = 0.2 + p * 0.1

    elif phase == 2:
        intensity = 0.1 + p * 0.1
        frequency = 0.3 + p * 0.1

    elif phase == 3:
        # irregular swell
        intensity = 0.2 + p * 0.2
        frequency = 0.4 + p * 0.3
        intensity += value_noise(t * 2.0) * 0.1 * p

    elif phase == 4:
        intensity = 0.4 + p * 0.2
        frequency = 0.3 - p * 0.1
        if 0.9 < p < 0.95:
            intensity = 0.7
            frequency = 0.25

    elif phase == 5:
        if p >= 0.1:
            wave = math.sin(p * 10.0) * 0.5 + 0.5
            intensity = 0.15 + wave * 0.1
            frequency = 0.1 + wave * 0.05

    elif phase == 6:
        intensity = max(0.0, 0.1 - p * 0.1)
        frequency = max(0.05, 0.08 - p * 0.03)

    return HapticFrame(intensity, frequency)
