"""
Scoring utility functions.
Loads the weight model configuration (config/weights.yaml) used by scoring.metrics.
"""
from typing import Dict, Any, Optional
import os

import yaml

from .weights import WeightModel

# filename used for weight YAML configuration
WEIGHTS_FILENAME = 'weights.yaml'

# level scores of the live system (level_None, C, B, A, S)
DEFAULT_BASE = {0: 0.0, 1: 5.0, 2: 20.0, 3: 60.0, 4: 200.0}
# urgency ordinals (None, Low, Medium, High, Urgent)
DEFAULT_MULTIPLIER = {0: 1.0, 1: 1.25, 2: 1.5, 3: 1.75, 4: 2.0}
DEFAULT_REVIEWER_SHARE = 0.2


def default_weights_path() -> str:
    env_path = os.getenv('COPANY_WEIGHTS_FILE')
    if env_path:
        return env_path
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), 'config', WEIGHTS_FILENAME)


def _read_config(path: str) -> Dict[str, Any]:
    with open(path, 'r', encoding='utf-8') as f:
        doc = yaml.safe_load(f) or {}
    if not isinstance(doc, dict):
        raise ValueError(f"Weights config at {path} must be a mapping")
    return doc


def _reviewer_share_override() -> Optional[float]:
    raw = os.getenv('COPANY_REVIEWER_SHARE')
    if raw is None or raw == '':
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"COPANY_REVIEWER_SHARE must be a number, got {raw!r}")


def load_weights(path: Optional[str] = None, preset: Optional[str] = None, reviewer_share: Optional[float] = None) -> WeightModel:
    """
    Build the WeightModel from a YAML file if available, otherwise from the defaults.

    Precedence for the reviewer share: explicit argument, COPANY_REVIEWER_SHARE, preset, file, default.
    A named preset is merged over the top-level tables; an unknown preset raises ValueError.
    """
    path = path or default_weights_path()
    doc: Dict[str, Any] = _read_config(path) if os.path.exists(path) else {}
    if preset and not os.path.exists(path):
        raise ValueError(f"Weights config file not found at: {path}")

    base = doc.get('base') or DEFAULT_BASE
    multiplier = doc.get('multiplier') or DEFAULT_MULTIPLIER
    share = doc.get('reviewer_share', DEFAULT_REVIEWER_SHARE)

    if preset:
        presets = doc.get('presets') or {}
        if preset not in presets:
            raise ValueError(f"Preset '{preset}' not found in {path}")
        preset_map = presets.get(preset) or {}
        base = preset_map.get('base') or base
        multiplier = preset_map.get('multiplier') or multiplier
        share = preset_map.get('reviewer_share', share)

    env_share = _reviewer_share_override()
    if env_share is not None:
        share = env_share
    if reviewer_share is not None:
        share = reviewer_share
    return WeightModel(base, multiplier, share)


def list_presets(path: Optional[str] = None) -> list:
    """Return a list of available preset names from the weights YAML (or empty list)."""
    path = path or default_weights_path()
    if not os.path.exists(path):
        return []
    presets = _read_config(path).get('presets') or {}
    return list(presets.keys())
