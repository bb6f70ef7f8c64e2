"""
NDE Core - Experience Blueprint
Routes: /api/experience/*
Dependencies: runtime (ExperienceRuntime)

Control routes only queue commands; the runtime's tick thread executes
them at the start of its next tick.
"""

from flask import Blueprint, jsonify, request

experience_bp = Blueprint('experience', __name__)

# Dependencies injected at registration time
_runtime = None


def init_app(runtime):
    """Initialize blueprint with required dependencies."""
    global _runtime
    _runtime = runtime


def _queue(command, *args):
    if _runtime is None:
        return jsonify({'success': False, 'error': 'Experience runtime not available'}), 503
    if not _runtime.submit(command, *args):
        return jsonify({'success': False, 'error': f'Unknown command: {command}'}), 400
    return jsonify({'success': True, 'queued': command})


@experience_bp.route('/api/experience/status', methods=['GET'])
def get_experience_status():
    if _runtime is None:
        return jsonify({'error': 'Experience runtime not available'}), 503
    return jsonify(_runtime.status())


@experience_bp.route('/api/experience/phases', methods=['GET'])
def get_experience_phases():
    if _runtime is None:
        return jsonify({'error': 'Experience runtime not available'}), 503
    return jsonify({
        'phases': _runtime.phases(),
        'total_duration': _runtime.config.table.total_duration,
    })


@experience_bp.route('/api/experience/start', methods=['POST'])
def start_experience():
    return _queue('start')


@experience_bp.route('/api/experience/start-at-phase', methods=['POST'])
def start_experience_at_phase():
    """Jump to the start of a phase (debug keys 1-6).

    Body: {"phase": int}. Out-of-range phases are clamped by the sequencer.
    """
    data = request.get_json(silent=True) or {}
    phase = data.get('phase')
    if isinstance(phase, bool) or not isinstance(phase, int):
        return jsonify({'success': False, 'error': 'phase must be an integer'}), 400
    return _queue('start_at_phase', phase)


@experience_bp.route('/api/experience/stop', methods=['POST'])
def stop_experience():
    return _queue('stop')


@experience_bp.route('/api/experience/toggle', methods=['POST'])
def toggle_experience():
    """Stop if running, else start (debug space bar)."""
    return _queue('toggle')


@experience_bp.route('/api/experience/intro', methods=['POST'])
def start_intro():
    """Run the scripted intro. Body: {"restart": bool} to run it again."""
    data = request.get_json(silent=True) or {}
    return _queue('intro', bool(data.get('restart', False)))
