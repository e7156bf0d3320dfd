"""
Load mirror settings.

Priority (highest first):
1. Environment variables FEEDMIRROR_STORE_PATH / FEEDMIRROR_MIRROR_ENABLED
2. The YAML file named by FEEDMIRROR_CONFIG
3. Defaults from MirrorSettings
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from feedmirror.domain.errors import ConfigurationError
from feedmirror.domain.models import MirrorSettings

CONFIG_ENV_VAR = "FEEDMIRROR_CONFIG"
STORE_PATH_ENV_VAR = "FEEDMIRROR_STORE_PATH"
MIRROR_ENABLED_ENV_VAR = "FEEDMIRROR_MIRROR_ENABLED"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _load_config_file(path: Path) -> Dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping, got {type(raw).__name__}")
    return raw


def load_settings(environ: Optional[Mapping[str, str]] = None) -> MirrorSettings:
    """
    Build MirrorSettings from the config file and the environment.

    Raises:
        ConfigurationError: if the file or any value is invalid.
    """
    env = os.environ if environ is None else environ
    data: Dict[str, Any] = {}

    config_path = env.get(CONFIG_ENV_VAR)
    if config_path:
        data.update(_load_config_file(Path(config_path).expanduser()))

    store_path = env.get(STORE_PATH_ENV_VAR)
    if store_path:
        data["store_path"] = store_path

    mirror_enabled = env.get(MIRROR_ENABLED_ENV_VAR)
    if mirror_enabled:
        value = mirror_enabled.strip().lower()
        if value in _TRUE_VALUES:
            data["mirror_enabled"] = True
        elif value in _FALSE_VALUES:
            data["mirror_enabled"] = False
        else:
            raise ConfigurationError(f"{MIRROR_ENABLED_ENV_VAR} must be a boolean, got {mirror_enabled!r}")

    try:
        return MirrorSettings(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid mirror settings: {e}") from e
