"""
Scheduled Actions - Tick-driven timers and fade envelopes

Replaces suspended control flow (delayed starts, staged intros, fades)
with explicit records that carry a start time and a duration and are
advanced by the same tick that drives the sequencer. Nothing here owns a
thread, so the whole timeline stays single-threaded and deterministic.

Classes:
    ScheduledAction: Callback due at start_time + delay
    ActionScheduler: Ordered set of pending actions, advanced by run_due()
    FadeEnvelope: Lazily evaluated value ramp (start -> end over duration)
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Any
import itertools
import logging

logger = logging.getLogger(__name__)


def smoothstep(t: float) -> float:
    """Hermite ease (0 -> 1) with zero slope at both ends."""
    t = max(0.0, min(1.0, t))
    return t * t * (3.0 - 2.0 * t)


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation with t clamped to [0, 1]."""
    t = max(0.0, min(1.0, t))
    return a + (b - a) * t


# ============================================================
# Fade Envelope
# ============================================================

@dataclass
class FadeEnvelope:
    """
    Value ramp evaluated against a clock reading.

    The envelope never needs to be stepped: value(now) is a pure function
    of the reading, so a fade reaches its end value once its duration has
    elapsed even if nobody updates the owner again.
    """
    start_value: float
    end_value: float
    duration: float
    start_time: float
    eased: bool = True

    def progress(self, now: float) -> float:
        if self.duration <= 0:
            return 1.0
        return max(0.0, min(1.0, (now - self.start_time) / self.duration))

    def value(self, now: float) -> float:
        t = self.progress(now)
        if self.eased:
            t = smoothstep(t)
        return self.start_value + (self.end_value - self.start_value) * t

    def is_complete(self, now: float) -> bool:
        return self.progress(now) >= 1.0


# ============================================================
# Scheduled Actions
# ============================================================

@dataclass
class ScheduledAction:
    """A callback due at start_time + delay."""
    action_id: int
    name: str
    start_time: float
    delay: float
    callback: Callable[[], Any]
    cancelled: bool = False

    @property
    def due_time(self) -> float:
        return self.start_time + self.delay

    def is_due(self, now: float) -> bool:
        return not self.cancelled and now >= self.due_time


class ActionScheduler:
    """
    Pending actions advanced by run_due(now).

    Actions fire in due-time order (ties in scheduling order). A callback
    that raises is logged and dropped; the remaining due actions still run.
    Actions scheduled from inside a callback with zero delay run on the
    same pass.
    """

    def __init__(self):
        self._actions: Dict[int, ScheduledAction] = {}
        self._ids = itertools.count(1)
        # Clock reading of the run_due pass in progress, None outside one
        self.now: Optional[float] = None

    def schedule(self, name: str, now: float, delay: float, callback: Callable[[], Any]) -> ScheduledAction:
        """Schedule callback to run delay seconds after now."""
        action = ScheduledAction(
            action_id=next(self._ids),
            name=name,
            start_time=now,
            delay=max(0.0, float(delay)),
            callback=callback,
        )
        self._actions[action.action_id] = action
        logger.debug(f"Scheduled '{name}' in {action.delay:.2f}s (id={action.action_id})")
        return action

    def cancel(self, action: Optional[ScheduledAction]) -> bool:
        if action is None or action.action_id not in self._actions:
            return False
        action.cancelled = True
        del self._actions[action.action_id]
        return True

    def cancel_by_name(self, name: str) -> int:
        """Cancel every pending action with this name. Returns the count."""
        matches = [a for a in self._actions.values() if a.name == name]
        for action in matches:
            self.cancel(action)
        return len(matches)

    def run_due(self, now: float) -> int:
        """Fire every action due at now. Returns how many fired."""
        fired = 0
        self.now = now
        try:
            while True:
                due = [a for a in self._actions.values() if a.is_due(now)]
                if not due:
                    return fired
                due.sort(key=lambda a: (a.due_time, a.action_id))
                for action in due:
                    if action.action_id not in self._actions:
                        continue
                    del self._actions[action.action_id]
                    fired += 1
                    try:
                        action.callback()
                    except Exception as e:
                        logger.error(f"Scheduled action '{action.name}' failed: {e}", exc_info=True)
        finally:
            self.now = None

    def pending(self) -> List[ScheduledAction]:
        return sorted(self._actions.values(), key=lambda a: (a.due_time, a.action_id))

    def clear(self) -> None:
        for action in self._actions.values():
            action.cancelled = True
        self._actions.clear()

    def __len__(self) -> int:
        return len(self._actions)

    def to_list(self, now: float) -> List[Dict[str, Any]]:
        return [
            {"name": a.name, "remaining": max(0.0, a.due_time - now)}
            for a in self.pending()
        ]
