#!/usr/bin/env python3
"""
NDE Core v0.1 - Near-death experience sequencer server
Features:
- Phase sequencer driving star field, visual effects and spatial audio
- Best-effort UDP haptics to the vibration device
- HTTP control API and Socket.IO status stream
- Auto-start, debug start phase and scripted intro
"""

import json
import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

import core_registry as reg
from experience_settings import SETTINGS_FILE, load_settings, save_settings
from experience_runtime import ExperienceRuntime
from experience_state import ExperienceStatusTracker
from blueprints.experience_bp import experience_bp, init_app as experience_init
from blueprints.settings_bp import settings_bp, init_app as settings_init

# ============================================================
# Configuration - Environment-based with sensible defaults
# ============================================================
NDE_VERSION = "0.1.0"
API_PORT = int(os.environ.get('NDE_API_PORT', 8891))

AUDIT_LOG_DIR = os.path.join(os.path.expanduser("~"), "nde-logs")

# Default allowed origins for local deployment
# Add custom origins via NDE_CORS_ORIGINS environment variable (comma-separated)
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8891",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:8891",
]


def get_allowed_origins():
    """Get list of allowed CORS origins from defaults + environment"""
    origins = DEFAULT_CORS_ORIGINS.copy()
    env_origins = os.environ.get('NDE_CORS_ORIGINS', '')
    if env_origins:
        for origin in env_origins.split(','):
            origin = origin.strip()
            if origin and origin not in origins:
                origins.append(origin)
    return origins


# ============================================================
# Audit log - JSON lines with file rotation
# ============================================================
_audit_logger = logging.getLogger('nde.audit')
_audit_logger.setLevel(logging.INFO)
_audit_logger.propagate = False


def setup_audit_log(log_dir=AUDIT_LOG_DIR):
    """Attach the rotating audit handler (~/nde-logs/audit.log, 5 MB x 5)."""
    os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(log_dir, 'audit.log'),
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    handler.setFormatter(logging.Formatter('%(asctime)s %(message)s', datefmt='%Y-%m-%dT%H:%M:%S'))
    _audit_logger.addHandler(handler)
    return handler


def audit_log(event_type, **kwargs):
    """Write a structured audit log entry."""
    entry = json.dumps({'event': event_type, **kwargs}, separators=(',', ':'))
    _audit_logger.info(entry)


# ============================================================
# App factory
# ============================================================

def create_app(settings=None, runtime=None, save_settings_func=None):
    """
    Build the Flask app, Socket.IO server and runtime, and wire the blueprints.

    Returns:
        (app, socketio, runtime) - the runtime is not started
    """
    if settings is None:
        settings = load_settings()
    if save_settings_func is None:
        save_settings_func = save_settings

    app = Flask(__name__)
    origins = get_allowed_origins()
    CORS(app, resources={r"/api/*": {"origins": origins}})
    socketio = SocketIO(app, cors_allowed_origins=origins, async_mode='threading')

    reg.socketio = socketio
    reg.audit_log = audit_log
    reg.SETTINGS_FILE = SETTINGS_FILE
    reg.NDE_API_PORT = API_PORT

    if runtime is None:
        tracker = ExperienceStatusTracker(settings['experience'].get('broadcast_hz', 5))
        runtime = ExperienceRuntime(settings, status_tracker=tracker)
    reg.runtime = runtime
    reg.status_tracker = runtime.status_tracker
    reg.NDE_HAPTIC_PORT = runtime.config.haptic_port

    experience_init(runtime)
    settings_init(settings, save_settings_func, socketio)
    app.register_blueprint(experience_bp)
    app.register_blueprint(settings_bp)

    return app, socketio, runtime


# ============================================================
# Main
# ============================================================
if __name__ == '__main__':
    import signal

    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    setup_audit_log()

    app, socketio, runtime = create_app()

    print("\n" + "=" * 60)
    print(f"  NDE Core v{NDE_VERSION}")
    print("=" * 60)
    print(f"✓ API: http://0.0.0.0:{API_PORT}")
    print(f"✓ Haptics: {runtime.emitter.endpoint} (enabled={runtime.emitter.enabled})")
    print(f"✓ Phases: {len(runtime.phases())} ({runtime.config.table.total_duration:.0f}s total)")
    print(f"✓ Settings: {SETTINGS_FILE}")
    if runtime.config.debug_mode:
        print(f"🐞 Debug mode: starting at phase {runtime.config.debug_start_phase}")
    print(f"🔒 CORS allowed origins: {get_allowed_origins()}")

    audit_log('server_start', version=NDE_VERSION, started=datetime.now().isoformat())
    runtime.start()

    def _graceful_shutdown(signum, frame):
        print("\n⏹️ SIGTERM received, graceful shutdown...", flush=True)
        try:
            runtime.shutdown()
            print("  ✓ Experience stopped, haptics closed", flush=True)
        except Exception as e:
            print(f"  ❌ Runtime shutdown error: {e}", flush=True)
        audit_log('server_stop')
        print("✓ Shutdown complete", flush=True)
        os._exit(0)

    signal.signal(signal.SIGTERM, _graceful_shutdown)

    print("=" * 60 + "\n")

    socketio.run(app, host='0.0.0.0', port=API_PORT, debug=False, allow_unsafe_werkzeug=True)
