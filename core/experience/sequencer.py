"""
Phase Sequencer - Elapsed time to (phase, progress)

The sequencer is the single authority over the experience timeline. It
owns SequencerState, maps clock readings onto the PhaseTable and fans the
(phase, progress) pair out to the registered subsystems and the haptic
sink, in that order, once per tick.

Rules:
    - STOPPED <-> RUNNING only; start while running is stop then start
    - Subsystem updates run in registration order
    - No collaborator exception reaches the caller of start/tick/stop
    - Start is refused until mark_initialized() has been called
"""

from typing import Any, Callable, Dict, List, Optional
import logging

from .types import PhaseTable, SequencerState, SequencerStatus
from .subsystem import Subsystem

logger = logging.getLogger(__name__)


class PhaseSequencer:
    """
    Drives the experience timeline.

    Attributes:
        table: PhaseTable with the phase durations
        clock: Object with now() -> float
        fade_out_duration: Seconds passed to Subsystem.fade_out on stop
        haptic_sink: Object with send_start/send_end/update_from_phase, or None
        on_event: Callback(event_name, payload) for started/stopped/phase_changed
    """

    def __init__(
        self,
        table: PhaseTable,
        clock,
        fade_out_duration: float = 2.0,
        haptic_sink=None,
        on_event: Optional[Callable[[str, Dict[str, Any]], None]] = None,
    ):
        self.table = table
        self.clock = clock
        self.fade_out_duration = max(0.0, float(fade_out_duration))
        self.haptic_sink = haptic_sink
        self.on_event = on_event

        self.state = SequencerState()
        self._subsystems: List[Subsystem] = []
        self._initialized = False

    # ─────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────

    def register(self, subsystem: Optional[Subsystem]) -> bool:
        """
        Add a subsystem to the update list.

        A None entry stands for a missing collaborator: it is logged and
        skipped. Duplicates and objects that do not implement Subsystem are
        rejected.
        """
        if subsystem is None:
            logger.warning("Subsystem missing at registration, skipping")
            return False
        if not isinstance(subsystem, Subsystem):
            logger.error(f"Rejecting {subsystem!r}: not a Subsystem")
            return False
        if subsystem in self._subsystems:
            logger.warning(f"Subsystem '{subsystem.name}' already registered")
            return False
        self._subsystems.append(subsystem)
        logger.info(f"Registered subsystem '{subsystem.name}'")
        return True

    def unregister(self, subsystem: Subsystem) -> bool:
        if subsystem not in self._subsystems:
            return False
        self._subsystems.remove(subsystem)
        return True

    @property
    def subsystems(self) -> List[Subsystem]:
        return list(self._subsystems)

    def mark_initialized(self) -> None:
        self._initialized = True

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ─────────────────────────────────────────────────────────
    # Control
    # ─────────────────────────────────────────────────────────

    def start(self, now: Optional[float] = None) -> bool:
        """Start from phase 1."""
        return self._begin(1, 0.0, now)

    def start_at_phase(self, phase: int, now: Optional[float] = None) -> bool:
        """
        Start with the timeline positioned at the beginning of phase.

        The phase is clamped to [1, N]. start_instant is backdated by the
        cumulative duration of the earlier phases so the next tick resumes
        from there. Pass now when starting from inside a tick so the
        start and the tick agree on the clock reading.
        """
        try:
            requested = int(phase)
        except (TypeError, ValueError):
            logger.warning(f"Invalid start phase {phase!r}, refusing")
            return False
        target = self.table.clamp_phase(requested)
        if target != requested:
            logger.warning(f"Start phase {requested} out of range, clamped to {target}")
        return self._begin(target, self.table.phase_start(target), now)

    def _begin(self, phase: int, offset: float, now: Optional[float] = None) -> bool:
        if not self._initialized:
            logger.warning("Start refused: sequencer not initialized yet")
            return False

        if self.state.is_running:
            self.stop()

        if now is None:
            now = self.clock.now()
        self.state.started_at = now
        self.state.start_offset = offset
        self.state.start_instant = now - offset
        self.state.current_phase = phase
        self.state.phase_progress = 0.0
        self.state.last_tick = None

        for subsystem in self._subsystems:
            self._call(subsystem, "initialize")
        self._haptic("send_start")

        self.state.status = SequencerStatus.RUNNING
        self.state.run_count += 1
        logger.info(f"Experience started at phase {phase} ({self.table.name(phase)}), offset {offset:.1f}s")
        self._emit("started", {"phase": phase, "offset": offset})
        return True

    def stop(self) -> bool:
        """Stop and fade every subsystem out. Idempotent."""
        if not self.state.is_running:
            return False

        self.state.status = SequencerStatus.STOPPED
        for subsystem in self._subsystems:
            self._call(subsystem, "fade_out", self.fade_out_duration)
        self._haptic("send_end")

        logger.info(f"Experience stopped at phase {self.state.current_phase}")
        self._emit("stopped", {"phase": self.state.current_phase})
        return True

    def tick(self, now: Optional[float] = None) -> bool:
        """
        Advance the timeline to now.

        Returns:
            True if subsystems were updated this tick
        """
        if not self.state.is_running:
            return False

        if now is None:
            now = self.clock.now()
        self.state.last_tick = now
        elapsed = self.state.elapsed_at(now)

        if elapsed >= self.table.total_duration:
            self.stop()
            return False

        phase, progress = self.table.locate(elapsed)
        if phase != self.state.current_phase:
            previous = self.state.current_phase
            logger.info(f"Phase {previous} -> {phase} ({self.table.name(phase)})")
            self._emit("phase_changed", {"from": previous, "to": phase})
        self.state.current_phase = phase
        self.state.phase_progress = progress

        for subsystem in self._subsystems:
            self._call(subsystem, "update", phase, progress)
        self._haptic("update_from_phase", phase, progress)
        return True

    # ─────────────────────────────────────────────────────────
    # Collaborator calls
    # ─────────────────────────────────────────────────────────

    def _call(self, subsystem: Subsystem, method: str, *args) -> None:
        try:
            getattr(subsystem, method)(*args)
        except Exception as e:
            logger.error(f"Subsystem '{subsystem.name}' failed in {method}: {e}", exc_info=True)

    def _haptic(self, method: str, *args) -> None:
        if self.haptic_sink is None:
            return
        try:
            getattr(self.haptic_sink, method)(*args)
        except Exception as e:
            logger.error(f"Haptic sink failed in {method}: {e}")

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(event, payload)
        except Exception as e:
            logger.error(f"Event callback failed for '{event}': {e}")

    # ─────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    @property
    def current_phase(self) -> int:
        return self.state.current_phase

    @property
    def progress(self) -> float:
        return self.state.phase_progress

    def elapsed(self) -> float:
        if not self.state.is_running:
            return 0.0
        return self.state.elapsed_at(self.clock.now())

    def snapshot(self) -> Dict[str, Any]:
        phase = self.state.current_phase
        return {
            "status": self.state.status.value,
            "running": self.state.is_running,
            "initialized": self._initialized,
            "phase": phase,
            "phase_name": self.table.name(phase),
            "progress": round(self.state.phase_progress, 4),
            "elapsed": round(self.elapsed(), 3),
            "total_duration": self.table.total_duration,
            "run_count": self.state.run_count,
            "subsystems": [s.name for s in self._subsystems],
        }
