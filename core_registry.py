"""
NDE Core Registry - Shared Instance Registry

Flat modules that need the server's long-lived instances (socketio for
broadcasts, the audit logger) import from here. experience_core.py
populates these during startup; everything is None until then and every
reader checks before use.

The experience components themselves never look anything up here: their
collaborators are injected at construction.
"""

# ── Runtime ──
runtime = None            # ExperienceRuntime instance
status_tracker = None     # ExperienceStatusTracker instance

# ── Infrastructure ──
socketio = None           # Flask-SocketIO instance

# ── Utilities ──
audit_log = None          # Function for persistent audit logging

# ── Constants (set during startup) ──
NDE_API_PORT = 8891
NDE_HAPTIC_PORT = 8001
SETTINGS_FILE = None      # Path to settings JSON
