"""Configuration loading and serialization."""
import copy
import os
import sys
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

from .storage import DEFAULT_MODEL_URI

APP_NAME = "chunkscribe"
CONFIG_FILENAME = "config.toml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "model": {
        "backend": "auto",
        "path": DEFAULT_MODEL_URI,
        "name": "large-v3-turbo",
        "device": "cpu",
        "compute_type": "int8",
        "num_threads": 1,
    },
    "audio": {
        "sample_rate": 16000,
        "window_seconds": 30,
        "chunk_seconds": 30,
        "input_device": "default",
    },
    "generation": {
        "min_length": 1,
        "max_length": 448,
        "length_penalty": 1.0,
        "repetition_penalty": 1.0,
        "num_beams": 1,
    },
    "runtime": {
        "inference_timeout": 0,  # seconds, 0 disables
    },
    "paths": {
        "model_cache": "",
    },
}


def get_platform_config_dir() -> Path:
    """Return the per-user config directory for this platform."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / APP_NAME

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME

    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / APP_NAME


def _config_dirs() -> List[Path]:
    """Directories searched for config.toml, highest priority first."""
    return [Path.cwd(), get_platform_config_dir()]


def _find_config_path() -> Optional[Path]:
    for directory in _config_dirs():
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def _merge_configs(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge overrides into a copy of base."""
    result = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge_configs(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    path: Optional[Path] = None,
    quiet: bool = False,
    raise_on_error: bool = False,
) -> Dict[str, Any]:
    """Load config.toml merged over DEFAULT_CONFIG.

    Args:
        path: Explicit config file; searched for when None
        quiet: Suppress status output
        raise_on_error: Re-raise read/parse errors instead of using defaults

    Returns:
        Full configuration dictionary
    """
    if path is None:
        path = _find_config_path()

    if path is None:
        if not quiet:
            print("[INFO] No config.toml found, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, "rb") as f:
            user_config = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        if raise_on_error:
            raise
        if not quiet:
            print(f"[WARN] Failed to read {path}: {e}")
            print("[INFO] Using default configuration")
        return copy.deepcopy(DEFAULT_CONFIG)

    if not quiet:
        print(f"[OK] Loaded config from {path}")
    return _merge_configs(DEFAULT_CONFIG, user_config)


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_format_value(v) for v in value) + "]"
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def save_config(path: Path, config: Dict[str, Any]) -> None:
    """Write a two-level config dict as TOML."""
    # Bare keys must precede the first table header
    lines: List[str] = [
        f"{key} = {_format_value(value)}"
        for key, value in config.items()
        if not isinstance(value, dict)
    ]
    for section, values in config.items():
        if not isinstance(values, dict):
            continue
        if lines:
            lines.append("")
        lines.append(f"[{section}]")
        for key, value in values.items():
            lines.append(f"{key} = {_format_value(value)}")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
