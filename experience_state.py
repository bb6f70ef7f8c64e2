"""
NDE Experience State Tracker - Publishes sequencer events and status

Receives sequencer events (started / stopped / phase_changed), writes them
to the audit log and pushes them to Socket.IO clients. Periodic status
updates are rate-limited to broadcast_hz.

Uses core_registry for the socketio and audit_log references.
"""

import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

import core_registry as reg


class ExperienceStatusTracker:
    """Tracks experience events and broadcasts status snapshots"""

    MAX_HISTORY = 50

    def __init__(self, broadcast_hz: float = 5.0):
        self.lock = threading.Lock()
        self.broadcast_interval = 1.0 / broadcast_hz if broadcast_hz > 0 else None
        self.last_broadcast: Optional[float] = None
        self.history: List[Dict[str, Any]] = []
        self.last_status: Dict[str, Any] = {}

    def on_event(self, event: str, payload: Dict[str, Any]) -> None:
        """Sequencer event callback."""
        entry = {'event': event, 'timestamp': datetime.now().isoformat(), **payload}
        with self.lock:
            self.history.append(entry)
            del self.history[:-self.MAX_HISTORY]

        if reg.audit_log and event in ('started', 'stopped'):
            reg.audit_log(f'experience_{event}', **payload)
        if reg.socketio:
            name = f'experience_{event}' if event in ('started', 'stopped') else 'experience_phase'
            reg.socketio.emit(name, entry)

    def maybe_broadcast(self, now: float, status: Dict[str, Any]) -> bool:
        """Emit experience_update if the broadcast interval has passed."""
        with self.lock:
            self.last_status = status
            if self.broadcast_interval is None:
                return False
            if self.last_broadcast is not None and now - self.last_broadcast < self.broadcast_interval:
                return False
            self.last_broadcast = now
        if reg.socketio:
            reg.socketio.emit('experience_update', status)
        return True

    def get_history(self, limit: int = 20) -> List[Dict[str, Any]]:
        with self.lock:
            return list(self.history[-limit:])
