"""
Experience Type Definitions - Dataclasses for Sequencer Data Structures

This module contains the dataclasses and enums shared by the experience
sequencer, the haptic transport and the HTTP layer. They carry data and
small invariants only; timing logic lives in sequencer.py.

Classes:
    PhaseTable: Immutable ordered phase durations (index 0 = not started)
    SequencerStatus: STOPPED / RUNNING
    SequencerState: Mutable state owned by PhaseSequencer
    HapticFrame: (intensity, frequency) pair for the vibration device
    NetworkEndpoint: UDP destination of the haptic emitter
    HapticMessageType: Wire message kinds

Constants:
    DEFAULT_PHASE_DURATIONS: The stock 3-minute table
    PHASE_NAMES: Display labels per phase index
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Sequence, Tuple
from enum import Enum
import logging
import math

logger = logging.getLogger(__name__)


# ============================================================
# Constants
# ============================================================

DEFAULT_PHASE_DURATIONS = (0.0, 30.0, 30.0, 30.0, 30.0, 30.0, 30.0)

PHASE_NAMES = {
    0: "setup",
    1: "silent_cosmos",
    2: "signs_of_change",
    3: "world_collapse",
    4: "near_death_peak",
    5: "whiteout",
    6: "ending",
}


def clamp01(value: float) -> float:
    """Clamp a float to [0, 1]."""
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


# ============================================================
# Phase Table
# ============================================================

@dataclass(frozen=True)
class PhaseTable:
    """
    Ordered, immutable list of phase durations in seconds.

    Index 0 is reserved for "not started" and never contributes to timing.
    Phases 1..N are the timed segments.
    """
    durations: Tuple[float, ...] = DEFAULT_PHASE_DURATIONS

    def __post_init__(self):
        if len(self.durations) < 2:
            raise ValueError("Phase table needs at least one timed phase")
        if any(d < 0 for d in self.durations):
            raise ValueError(f"Phase durations must be >= 0: {self.durations}")
        if self.total_duration <= 0:
            raise ValueError("Phase table total duration must be > 0")

    @classmethod
    def from_durations(cls, values: Sequence[Any]) -> 'PhaseTable':
        """
        Build a table from untrusted config values.

        Negative or non-numeric entries are configuration errors: they are
        logged and replaced by 0 so the phase is skipped.
        """
        cleaned: List[float] = []
        for index, raw in enumerate(values):
            try:
                value = float(raw)
            except (TypeError, ValueError):
                logger.warning(f"Phase {index}: invalid duration {raw!r}, skipping phase")
                cleaned.append(0.0)
                continue
            if math.isnan(value) or value < 0:
                logger.warning(f"Phase {index}: negative duration {raw!r}, skipping phase")
                value = 0.0
            elif index > 0 and value == 0:
                logger.warning(f"Phase {index}: zero duration, phase will be skipped")
            cleaned.append(value)
        return cls(tuple(cleaned))

    @property
    def phase_count(self) -> int:
        """Number of timed phases (N)."""
        return len(self.durations) - 1

    @property
    def total_duration(self) -> float:
        return sum(self.durations[1:])

    def duration(self, phase: int) -> float:
        return self.durations[phase]

    def clamp_phase(self, phase: int) -> int:
        return max(1, min(self.phase_count, int(phase)))

    def phase_start(self, phase: int) -> float:
        """Cumulative duration of phases 1..phase-1."""
        return sum(self.durations[1:self.clamp_phase(phase)])

    def locate(self, elapsed: float) -> Tuple[int, float]:
        """
        Map elapsed seconds to (phase, progress).

        Walks the table accumulating durations until the accumulator exceeds
        elapsed. Past the last boundary (floating point at the end of the
        timeline) the final phase is reported at progress 1.0. Zero-length
        phases are never reported and negative elapsed counts as 0.
        """
        elapsed = max(0.0, elapsed)
        accumulated = 0.0
        for phase in range(1, len(self.durations)):
            phase_duration = self.durations[phase]
            if phase_duration <= 0:
                continue
            accumulated += phase_duration
            if elapsed < accumulated:
                phase_start = accumulated - phase_duration
                progress = (elapsed - phase_start) / phase_duration
                return phase, clamp01(progress)
        return self.phase_count, 1.0

    def name(self, phase: int) -> str:
        return PHASE_NAMES.get(phase, f"phase_{phase}")

    def to_list(self) -> List[Dict[str, Any]]:
        return [
            {
                "phase": p,
                "name": self.name(p),
                "duration": self.durations[p],
                "start": self.phase_start(p),
            }
            for p in range(1, len(self.durations))
        ]


# ============================================================
# Sequencer State
# ============================================================

class SequencerStatus(Enum):
    """Top-level sequencer state. Phase changes are a sub-state of RUNNING."""
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class SequencerState:
    """State owned exclusively by PhaseSequencer."""
    status: SequencerStatus = SequencerStatus.STOPPED
    start_instant: float = 0.0
    started_at: float = 0.0
    start_offset: float = 0.0
    current_phase: int = 0
    phase_progress: float = 0.0
    run_count: int = 0
    last_tick: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self.status == SequencerStatus.RUNNING

    def elapsed_at(self, now: float) -> float:
        """Timeline seconds at now, never negative. start_instant is only reported."""
        return max(0.0, now - self.started_at) + self.start_offset


# ============================================================
# Haptics
# ============================================================

class HapticMessageType(Enum):
    """Wire message kinds sent to the vibration device."""
    START = "start"
    END = "end"
    VIBRATION = "vibration"


@dataclass(frozen=True)
class HapticFrame:
    """(intensity, frequency) for one tick, both clamped to [0, 1]."""
    intensity: float = 0.0
    frequency: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "intensity", clamp01(float(self.intensity)))
        object.__setattr__(self, "frequency", clamp01(float(self.frequency)))

    @classmethod
    def zero(cls) -> 'HapticFrame':
        return cls(0.0, 0.0)

    def to_dict(self) -> Dict[str, float]:
        return {"intensity": self.intensity, "frequency": self.frequency}


@dataclass(frozen=True)
class NetworkEndpoint:
    """UDP destination, fixed at emitter construction."""
    host: str = "127.0.0.1"
    port: int = 8001

    def __post_init__(self):
        if not self.host:
            raise ValueError("Endpoint host must not be empty")
        if not 1 <= int(self.port) <= 65535:
            raise ValueError(f"Invalid UDP port: {self.port}")

    @property
    def address(self) -> Tuple[str, int]:
        return (self.host, int(self.port))

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class EmitterStats:
    """Counters exposed by HapticEmitter.get_stats()."""
    sent: int = 0
    dropped: int = 0
    retries: int = 0
    throttled: int = 0
    last_message: Optional[str] = None
    last_error: Optional[str] = None
    by_type: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sent": self.sent,
            "dropped": self.dropped,
            "retries": self.retries,
            "throttled": self.throttled,
            "last_message": self.last_message,
            "last_error": self.last_error,
            "by_type": dict(self.by_type),
        }
