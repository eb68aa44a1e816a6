import logging
from pathlib import Path
from typing import Optional
import yaml

from vtc.config.models import AppConfig

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "vtc" / "vtc.yaml"

logger = logging.getLogger(__name__)

def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Loads YAML config; a missing file means defaults."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        logger.debug(f"Config file {path} not found, using defaults")
        return AppConfig()

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")

    return AppConfig(**data)
