"""
NDE Experience Module - Timed multi-channel experience sequencer

This package turns elapsed time into a discrete phase and a continuous
phase progress, fans that pair out to the output subsystems and forwards
haptic parameters to an external vibration device over UDP.

Key Components:
- PhaseSequencer: Owns the timeline and the STOPPED/RUNNING state
- PhaseTable: Immutable phase durations (index 0 = not started)
- Subsystem: Contract every output channel implements
- HapticEmitter: Rate-limited, best-effort UDP emitter
- ActionScheduler / FadeEnvelope: Tick-driven delays and fades

Usage:
    from core.experience import PhaseSequencer, PhaseTable, MonotonicClock

    clock = MonotonicClock()
    sequencer = PhaseSequencer(PhaseTable(), clock, haptic_sink=create_emitter(clock=clock))
    sequencer.register(star_field)
    sequencer.mark_initialized()
    sequencer.start()
    sequencer.tick()

Version: 0.1.0
"""

from .types import (
    DEFAULT_PHASE_DURATIONS,
    PHASE_NAMES,
    PhaseTable,
    SequencerStatus,
    SequencerState,
    HapticMessageType,
    HapticFrame,
    NetworkEndpoint,
    EmitterStats,
    clamp01,
)

from .clock import MonotonicClock, ManualClock
from .scheduler import ActionScheduler, ScheduledAction, FadeEnvelope, smoothstep, lerp
from .subsystem import Subsystem
from .haptics import haptic_frame_for, value_noise
from .transport import (
    HapticEmitter,
    HapticTransportError,
    HapticConnectionError,
    create_emitter,
    format_vibration,
)
from .sequencer import PhaseSequencer

__all__ = [
    # Types
    "DEFAULT_PHASE_DURATIONS",
    "PHASE_NAMES",
    "PhaseTable",
    "SequencerStatus",
    "SequencerState",
    "HapticMessageType",
    "HapticFrame",
    "NetworkEndpoint",
    "EmitterStats",
    "clamp01",
    # Clock
    "MonotonicClock",
    "ManualClock",
    # Scheduling
    "ActionScheduler",
    "ScheduledAction",
    "FadeEnvelope",
    "smoothstep",
    "lerp",
    # Subsystems
    "Subsystem",
    # Haptics
    "haptic_frame_for",
    "value_noise",
    "HapticEmitter",
    "HapticTransportError",
    "HapticConnectionError",
    "create_emitter",
    "format_vibration",
    # Sequencer
    "PhaseSequencer",
]

__version__ = "0.1.0"
