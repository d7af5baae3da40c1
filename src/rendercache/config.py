"""Configuration loader for the render cache."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml


def _parse_mode(value: Any) -> int:
    """Permission bits from ``0755``/``"0o755"`` style strings or ints."""
    if isinstance(value, int):
        return value
    text = str(value).strip().lower()
    if text.startswith("0o"):
        text = text[2:]
    return int(text, 8)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class PermissionsConfig:
    dirs: int
    files: int


@dataclass(frozen=True)
class RenderCacheConfig:
    enabled: bool
    cache_dir: Path
    permissions: PermissionsConfig
    log_level: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RenderCacheConfig":
        perm_data = data.get("permissions", {}) or {}
        return cls(
            enabled=_parse_bool(data.get("enabled", True)),
            cache_dir=Path(data.get("cache_dir", "cache/pages")),
            permissions=PermissionsConfig(
                dirs=_parse_mode(perm_data.get("dirs", "0755")),
                files=_parse_mode(perm_data.get("files", "0644")),
            ),
            log_level=str(data.get("log_level", "INFO")).upper(),
        )


ENV_MAP = {
    "enabled": "RENDERCACHE_ENABLED",
    "cache_dir": "RENDERCACHE_DIR",
    "permissions.dirs": "RENDERCACHE_DIR_MODE",
    "permissions.files": "RENDERCACHE_FILE_MODE",
    "log_level": "RENDERCACHE_LOG_LEVEL",
}


CONFIG_ENV = "RENDERCACHE_CONFIG"
DEFAULT_CONFIG_PATH = Path("config/rendercache.defaults.yml")


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def merge_env_overrides(
    config_data: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Overlay ENV_MAP variables onto the file values. Nested sections are created as needed."""
    environ = os.environ if environ is None else environ
    merged = copy.deepcopy(config_data)

    for dotted_key, env_name in ENV_MAP.items():
        if env_name not in environ:
            continue
        *sections, leaf = dotted_key.split(".")
        target = merged
        for section in sections:
            if not isinstance(target.get(section), dict):
                target[section] = {}
            target = target[section]
        target[leaf] = environ[env_name]

    return merged


def load_config(config_path: Optional[str | Path] = None) -> RenderCacheConfig:
    """Load config from ``config_path``, else $RENDERCACHE_CONFIG, else the shipped defaults."""
    path = Path(config_path or os.environ.get(CONFIG_ENV) or DEFAULT_CONFIG_PATH)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    return RenderCacheConfig.from_dict(merge_env_overrides(load_yaml(path)))
