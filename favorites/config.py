"""YAML configuration loading."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


def load_config(path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Load the YAML config; a missing or empty file yields an empty dict."""
    if not Path(path).exists():
        logger.debug("No config at %s, using defaults", path)
        return {}
    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)
    return config or {}
