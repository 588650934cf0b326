from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from storybridge.config.models import GatewayConfig

logger = logging.getLogger(__name__)

# env var → (section, key); section None means top level
_ENV_OVERRIDES = {
    "SHORTCUT_BASE_URL": ("connector", "base_url"),
    "SHORTCUT_AUTH_HEADER": ("connector", "auth_header"),
    "SHORTCUT_PAGE_SIZE": ("connector", "page_size"),
    "SHORTCUT_TIMEOUT_S": ("connector", "timeout_s"),
    "REDIS_URL": (None, "redis_url"),
    "CREDENTIAL_TTL_S": (None, "credential_ttl_s"),
}


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> GatewayConfig:
    """
    Build a GatewayConfig from an optional YAML file plus environment overrides.

    Precedence: environment > YAML file > model defaults.

    Raises:
        FileNotFoundError: if `path` is given but does not exist.
        ValidationError / yaml.YAMLError: if the merged config is invalid.
    """
    env = os.environ if environ is None else environ
    raw: Dict[str, Any] = {}

    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        try:
            raw = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as exc:
            logger.error("Failed to parse config %s: %s", config_path, exc)
            raise
        logger.info("Loaded config file: %s", config_path.name)

    for var, (section, key) in _ENV_OVERRIDES.items():
        if var not in env:
            continue
        target = raw.setdefault(section, {}) if section else raw
        target[key] = env[var]

    try:
        return GatewayConfig.model_validate(raw)
    except ValidationError as exc:
        logger.error("Invalid configuration: %s", exc)
        raise
