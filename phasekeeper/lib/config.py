"""
Engine configuration.

Loaded from an optional <root>/.phasekeeper/engine.env. Every key has a
default, so a repository without the file behaves like a fresh checkout.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from . import envparse
from .constants import (
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_STATE_DIR,
    DEFAULT_STATE_FILE,
    ENGINE_CONFIG_FILE,
)

logger = logging.getLogger(__name__)

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


@dataclass
class EngineConfig:
    """Where state lives and how it is guarded."""
    state_dir: str = DEFAULT_STATE_DIR
    state_file: str = DEFAULT_STATE_FILE  # Relative to state_dir
    lock_timeout: int = DEFAULT_LOCK_TIMEOUT
    use_lock: bool = True


def _parse_int(env: dict, key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"[CONFIG] Invalid {key}='{raw}', using default {default}")
        return default
    if value < 0:
        logger.warning(f"[CONFIG] Negative {key}={value}, using default {default}")
        return default
    return value


def _parse_bool(env: dict, key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    logger.warning(f"[CONFIG] Invalid {key}='{raw}', using default {default}")
    return default


def load_engine_config(root: Path) -> EngineConfig:
    """Load engine.env under the default state dir, falling back to defaults."""
    config_path = Path(root) / DEFAULT_STATE_DIR / ENGINE_CONFIG_FILE
    if not config_path.exists():
        return EngineConfig()

    env = envparse.load_env(config_path)

    known = {"STATE_DIR", "STATE_FILE", "LOCK_TIMEOUT", "USE_LOCK"}
    for key in sorted(set(env) - known):
        logger.warning(f"[CONFIG] Unknown key {key} in {config_path}")

    return EngineConfig(
        state_dir=env.get("STATE_DIR") or DEFAULT_STATE_DIR,
        state_file=env.get("STATE_FILE") or DEFAULT_STATE_FILE,
        lock_timeout=_parse_int(env, "LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT),
        use_lock=_parse_bool(env, "USE_LOCK", True),
    )
