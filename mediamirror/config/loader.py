import yaml
from pathlib import Path
from typing import Optional
from .models import AppConfig

def load_config(config_path: Path) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    # Flat files (no 'general' section) are treated as general settings
    if data and not any(key in data for key in ("general", "mencoder", "libav")):
        data = {"general": data}

    return AppConfig(**data)

def load_config_or_default(config_path: Optional[Path]) -> AppConfig:
    if config_path is None:
        return AppConfig()
    return load_config(config_path)
