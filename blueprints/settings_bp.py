"""
NDE Core - Settings Blueprint
Routes: /api/settings/*
Dependencies: app_settings dict, save_settings func, socketio

Updated values are persisted immediately and picked up by the runtime on
the next server start.
"""

from flask import Blueprint, jsonify, request

settings_bp = Blueprint('settings', __name__)

# Dependencies injected at registration time
_app_settings = None
_save_settings = None
_socketio = None


def init_app(app_settings, save_settings_func, socketio):
    """Initialize blueprint with required dependencies."""
    global _app_settings, _save_settings, _socketio
    _app_settings = app_settings
    _save_settings = save_settings_func
    _socketio = socketio


@settings_bp.route('/api/settings/all', methods=['GET'])
def get_all_settings():
    return jsonify(_app_settings)


@settings_bp.route('/api/settings/<category>', methods=['GET'])
def get_settings_category(category):
    if category not in _app_settings:
        return jsonify({'error': 'Category not found'}), 404
    return jsonify(_app_settings[category])


@settings_bp.route('/api/settings/<category>', methods=['POST', 'PUT'])
def update_settings_category(category):
    if category not in _app_settings:
        return jsonify({'error': 'Category not found'}), 404
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Expected a JSON object'}), 400
    unknown = sorted(set(data) - set(_app_settings[category]))
    if unknown:
        return jsonify({'error': f'Unknown keys for {category}: {unknown}'}), 400

    _app_settings[category].update(data)
    saved = _save_settings(_app_settings)
    if _socketio:
        _socketio.emit('settings_update', {'category': category, 'data': _app_settings[category]})
    return jsonify({'success': True, 'saved': saved, category: _app_settings[category]})
