"""
Configuration file handling.

Settings live in a JSON file in the user's home directory. The file is
written with defaults the first time it is needed; a couple of settings can
be overridden from the environment for a single session.
"""
import json
import os
from pathlib import Path
from typing import Any

from .errors import InvalidSetting
from .storage import SHARED_STORAGE_PATHS

CONFIG_ENV = "SHELLKIT_CONFIG"

DEFAULT_CONFIG = {
    "cd_verbose": True,
    "max_history": 20,
    "preview_entries": 10,
    "backup_dir": str(Path.home() / ".backups"),
    "trash_dir": str(Path.home() / ".trash"),
    "shared_storage_paths": list(SHARED_STORAGE_PATHS),
}


def config_path() -> Path:
    return Path(os.environ.get(CONFIG_ENV) or Path.home() / ".shellkit_conf.json")


def ensure_config(path=None) -> Path:
    """Ensure config file exists"""
    path = Path(path) if path else config_path()
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(DEFAULT_CONFIG, indent=2))
    return path


def load_config(path=None) -> dict:
    path = ensure_config(path)
    try:
        data = json.loads(path.read_text())
    except ValueError:
        print(f"[CONFIG] {path} is not valid JSON, using defaults")
        data = {}
    config = {**DEFAULT_CONFIG, **(data if isinstance(data, dict) else {})}
    return apply_env_overrides(sanitize_config(config, path))


def apply_env_overrides(config: dict) -> dict:
    verbose = os.environ.get("SHELLKIT_CD_VERBOSE")
    if verbose is not None:
        config["cd_verbose"] = parse_flag(verbose)
    backup_dir = os.environ.get("SHELLKIT_BACKUP_DIR")
    if backup_dir:
        config["backup_dir"] = backup_dir
    trash_dir = os.environ.get("SHELLKIT_TRASH_DIR")
    if trash_dir:
        config["trash_dir"] = trash_dir
    return config


def config_get(key: str, path=None) -> Any:
    """Get config value"""
    return load_config(path).get(key)


def config_set(key: str, value: Any, path=None):
    """Set config value"""
    path = ensure_config(path)
    try:
        data = json.loads(path.read_text())
    except ValueError:
        data = {}
    data[key] = value
    path.write_text(json.dumps(data, indent=2))


def parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


# minimum accepted value for each integer setting
INTEGER_SETTINGS = {"max_history": 1, "preview_entries": 0}
FLAG_SETTINGS = ("cd_verbose",)


def parse_flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in ("0", "", "false", "off", "no")


def coerce_setting(key: str, value: Any) -> Any:
    """Convert a value for a known key, raising InvalidSetting if it does not fit"""
    if key in FLAG_SETTINGS:
        return parse_flag(value)
    if key in INTEGER_SETTINGS:
        if isinstance(value, bool):
            raise InvalidSetting(key, value)
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise InvalidSetting(key, value)
        if number != value and not isinstance(value, str):
            raise InvalidSetting(key, value)
        if number < INTEGER_SETTINGS[key]:
            raise InvalidSetting(key, value, f"must be at least {INTEGER_SETTINGS[key]}")
        return number
    return value


def sanitize_config(config: dict, path=None) -> dict:
    """Replace saved values that cannot be used with their defaults"""
    for key in list(INTEGER_SETTINGS) + list(FLAG_SETTINGS):
        try:
            config[key] = coerce_setting(key, config.get(key, DEFAULT_CONFIG[key]))
        except InvalidSetting as e:
            print(f"[CONFIG] {e.detail} in {path or 'config'}, using {DEFAULT_CONFIG[key]!r}")
            config[key] = DEFAULT_CONFIG[key]
    return config
