"""
Application settings stored in config.yaml

    sync:
      key: app_data
      interval_ms: 300000
      conflict_window_ms: 10000
    logging:
      level: WARNING

Runtime sync state (provider, credentials, last sync time) lives in the
local state store, not here.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict
import copy
import logging

import yaml

from .conflict_detector import DEFAULT_CONFLICT_WINDOW_MS
from .models import DEFAULT_SYNC_INTERVAL_MS

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"
STATE_FILENAME = "state.json"

DEFAULTS: Dict[str, Any] = {
    "sync": {
        "key": "app_data",
        "interval_ms": DEFAULT_SYNC_INTERVAL_MS,
        "conflict_window_ms": DEFAULT_CONFLICT_WINDOW_MS,
    },
    "logging": {
        "level": "WARNING",
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def parse_value(raw: str) -> Any:
    """
    Interpret a command-line value as YAML so numbers and booleans keep
    their type.

    Examples:
        >>> parse_value("60000")
        60000
        >>> parse_value("true")
        True
        >>> parse_value("app_data")
        'app_data'
    """
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


@dataclass
class Settings:
    """Settings loaded from <base_path>/config.yaml"""
    base_path: Path
    data: Dict[str, Any]

    @classmethod
    def load(cls, base_path: Path) -> "Settings":
        """
        Read config.yaml, falling back to defaults when it is missing.

        Raises:
            ValueError: If the file exists but is not a YAML mapping
        """
        base_path = Path(base_path)
        path = base_path / CONFIG_FILENAME
        loaded: Dict[str, Any] = {}
        if path.exists():
            try:
                loaded = yaml.safe_load(path.read_text()) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
            if not isinstance(loaded, dict):
                raise ValueError(f"{path} must contain a mapping")
        else:
            logger.debug(f"No config file at {path}, using defaults")
        return cls(base_path=base_path, data=_deep_merge(DEFAULTS, loaded))

    @property
    def config_path(self) -> Path:
        return self.base_path / CONFIG_FILENAME

    @property
    def state_path(self) -> Path:
        return self.base_path / STATE_FILENAME

    @property
    def sync_key(self) -> str:
        return str(self.data["sync"]["key"])

    @property
    def interval_ms(self) -> int:
        return int(self.data["sync"]["interval_ms"])

    @property
    def conflict_window_ms(self) -> int:
        return int(self.data["sync"]["conflict_window_ms"])

    @property
    def log_level(self) -> str:
        return str(self.data["logging"]["level"]).upper()

    def get(self, key: str) -> Any:
        """
        Look up a dotted key such as "sync.interval_ms".

        Raises:
            KeyError: If any part of the key is missing
        """
        current: Any = self.data
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                raise KeyError(key)
            current = current[part]
        return current

    def set(self, key: str, value: Any) -> None:
        """Set a dotted key, creating intermediate sections"""
        parts = key.split(".")
        current = self.data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value

    def save(self) -> Path:
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(yaml.dump(self.data, default_flow_style=False))
        return self.config_path

    def dump(self) -> str:
        return yaml.dump(self.data, default_flow_style=False)
