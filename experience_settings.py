"""
NDE Settings Management - Defaults, JSON persistence and typed config

Settings are a nested dict by category, persisted to a JSON file in the
user's home directory. Saved categories are merged over the defaults so a
settings file from an older build still loads.
"""

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict

from core.experience import DEFAULT_PHASE_DURATIONS, PhaseTable

logger = logging.getLogger(__name__)

HOME_DIR = os.path.expanduser("~")
SETTINGS_FILE = os.environ.get('NDE_SETTINGS_FILE', os.path.join(HOME_DIR, "nde-settings.json"))

DEFAULT_SETTINGS = {
    "experience": {
        "phase_durations": list(DEFAULT_PHASE_DURATIONS),
        "total_duration": 180.0,
        "fade_in_duration": 2.0,
        "fade_out_duration": 2.0,
        "auto_start_delay": 5.0,
        "init_delay": 0.1,
        "debug_mode": False,
        "debug_start_phase": 1,
        "tick_rate": 30,
        "broadcast_hz": 5,
    },
    "haptics": {
        "host": "127.0.0.1",
        "port": 8001,
        "send_interval": 0.1,
        "intensity_multiplier": 1.0,
        "frequency_multiplier": 1.0,
        "debug_log": False,
    },
    "visual": {"effect_intensity": 0.8, "effect_speed": 1.0, "reduce_effects_for_vr": True},
    "audio": {
        "master_volume": 1.0,
        "fade_in_duration": 2.0,
        "fade_out_duration": 10.0,
        "enable_pitch_shifting": True,
        "low_pass_amount": 0.5,
        "seed": 7,
    },
    "stars": {"twinkle_amount": 0.3, "vortex_strength": 0.5, "center_pull": 0.5, "emission_intensity": 1.5},
    "intro": {
        "heartbeat_slowdown_duration": 5.0,
        "flatline_duration": 3.0,
        "blackout_duration": 4.0,
        "ascension_duration": 8.0,
        "handoff_phase": 5,
    },
}


def default_settings() -> Dict[str, Dict[str, Any]]:
    return copy.deepcopy(DEFAULT_SETTINGS)


def load_settings(path: str = None) -> Dict[str, Dict[str, Any]]:
    path = path or SETTINGS_FILE
    settings = default_settings()
    try:
        if os.path.exists(path):
            with open(path, 'r') as f:
                saved = json.load(f)
            for key in saved:
                if key in settings and isinstance(settings[key], dict) and isinstance(saved[key], dict):
                    settings[key].update(saved[key])
                elif key in settings:
                    logger.warning(f"Ignoring malformed settings category '{key}'")
    except (OSError, ValueError) as e:
        logger.warning(f"Error loading settings from {path}: {e}")
    return settings


def save_settings(settings: Dict[str, Any], path: str = None) -> bool:
    path = path or SETTINGS_FILE
    try:
        with open(path, 'w') as f:
            json.dump(settings, f, indent=2)
        return True
    except (OSError, TypeError) as e:
        logger.error(f"Error saving settings to {path}: {e}")
        return False


# ============================================================
# Typed view of the settings
# ============================================================

def _coerce(section: Dict[str, Any], category: str, key: str, kind):
    """Read section[key] as kind; bad values fall back to the default with a warning."""
    default = DEFAULT_SETTINGS[category][key]
    raw = section.get(key, default)
    try:
        if kind is bool:
            if isinstance(raw, str):
                return raw.strip().lower() in ('1', 'true', 'yes', 'on')
            return bool(raw)
        return kind(raw)
    except (TypeError, ValueError):
        logger.warning(f"Setting {category}.{key}={raw!r} is not a valid {kind.__name__}, using {default!r}")
        return default


def _env_override(name: str, fallback, kind):
    """Environment value for name as kind, or fallback when unset or malformed."""
    raw = os.environ.get(name)
    if raw is None:
        return fallback
    try:
        return kind(raw.strip())
    except ValueError:
        logger.warning(f"Environment {name}={raw!r} is not a valid {kind.__name__}, using {fallback!r}")
        return fallback


@dataclass
class ExperienceConfig:
    """Experience settings after validation."""
    table: PhaseTable = field(default_factory=PhaseTable)
    fade_in_duration: float = 2.0
    fade_out_duration: float = 2.0
    auto_start_delay: float = 5.0
    init_delay: float = 0.1
    debug_mode: bool = False
    debug_start_phase: int = 1
    tick_rate: float = 30.0
    broadcast_hz: float = 5.0
    haptic_host: str = "127.0.0.1"
    haptic_port: int = 8001
    send_interval: float = 0.1
    intensity_multiplier: float = 1.0
    frequency_multiplier: float = 1.0
    haptic_debug_log: bool = False

    @classmethod
    def from_settings(cls, settings: Dict[str, Dict[str, Any]]) -> 'ExperienceConfig':
        exp = settings.get("experience", {})
        hap = settings.get("haptics", {})

        durations = exp.get("phase_durations", DEFAULT_SETTINGS["experience"]["phase_durations"])
        try:
            table = PhaseTable.from_durations(durations)
        except (TypeError, ValueError) as e:
            logger.error(f"Invalid phase table {durations!r}: {e}; using the default table")
            table = PhaseTable()

        configured_total = _coerce(exp, "experience", "total_duration", float)
        if abs(configured_total - table.total_duration) > 1e-6:
            logger.warning(
                f"total_duration {configured_total} disagrees with phase table sum "
                f"{table.total_duration}; using the table sum"
            )

        return cls(
            table=table,
            fade_in_duration=max(0.0, _coerce(exp, "experience", "fade_in_duration", float)),
            fade_out_duration=max(0.0, _coerce(exp, "experience", "fade_out_duration", float)),
            auto_start_delay=max(0.0, _coerce(exp, "experience", "auto_start_delay", float)),
            init_delay=max(0.0, _coerce(exp, "experience", "init_delay", float)),
            debug_mode=_coerce(exp, "experience", "debug_mode", bool),
            debug_start_phase=_coerce(exp, "experience", "debug_start_phase", int),
            tick_rate=max(1.0, _coerce(exp, "experience", "tick_rate", float)),
            broadcast_hz=max(0.0, _coerce(exp, "experience", "broadcast_hz", float)),
            haptic_host=_env_override('NDE_HAPTIC_HOST', _coerce(hap, "haptics", "host", str), str),
            haptic_port=_env_override('NDE_HAPTIC_PORT', _coerce(hap, "haptics", "port", int), int),
            send_interval=max(0.0, _coerce(hap, "haptics", "send_interval", float)),
            intensity_multiplier=_coerce(hap, "haptics", "intensity_multiplier", float),
            frequency_multiplier=_coerce(hap, "haptics", "frequency_multiplier", float),
            haptic_debug_log=_coerce(hap, "haptics", "debug_log", bool),
        )
