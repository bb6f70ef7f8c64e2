"""
Subsystem Contract - Interface for output collaborators

Every output channel driven by the sequencer (star field, visual effects,
spatial audio) implements this contract. The sequencer depends on it and
on nothing else.

Contract:
    initialize(): idempotent; cancels any in-flight fade
    update(phase, progress): cheap, non-blocking, called every tick
    fade_out(duration): non-blocking; the subsystem reaches its silent
        end state once duration has elapsed, even if update() is never
        called again
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class Subsystem(ABC):
    """
    Abstract base class for sequencer output channels.

    Attributes:
        name: Label used in logs and status snapshots
        clock: Object with now() -> float, injected at construction
    """

    name = "subsystem"

    def __init__(self, clock, name: Optional[str] = None):
        self.clock = clock
        if name:
            self.name = name

    @abstractmethod
    def initialize(self) -> None:
        """Reset to the start-of-experience state."""
        pass

    @abstractmethod
    def update(self, phase: int, progress: float) -> None:
        """
        Apply the control parameters for one tick.

        Args:
            phase: Current phase index (1..N)
            progress: Normalized position within the phase (0..1)
        """
        pass

    @abstractmethod
    def fade_out(self, duration: float) -> None:
        """Start a non-blocking fade to the silent/invisible end state."""
        pass

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready view of the current control parameters."""
        return {"name": self.name}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
