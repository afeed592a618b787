from __future__ import annotations

import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional

from .data_prep import BIKE_TRAFFIC_URL

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "bikes": {
        "url": BIKE_TRAFFIC_URL,
        "cache_path": "data/bike_traffic.csv",
        "max_count": 2000,
        "group_by": ["crossing"],
        "timeout": 60,
    },
    "corpus": {
        "metadata_path": "data/metadata.csv",
        "json_dir": "data/document_parses",
        "full_text_only": False,
        "stop_words": [],
        "min_word_length": 3,
        "top_k": 25,
        "min_count": 5,
        "max_items": 500,
    },
    "output": {
        "dir": "outputs",
    },
}


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from a YAML file; no path means built-in defaults."""
    if config_path is None:
        return copy.deepcopy(DEFAULTS)

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}
    if not isinstance(config, dict):
        raise ValueError(f"Config must be a mapping: {config_path}")
    return config


def get_section(config: Optional[Dict[str, Any]], name: str) -> Dict[str, Any]:
    """Settings for one section, with defaults filled in for absent keys."""
    if config is None:
        config = load_config()

    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    merged = copy.deepcopy(DEFAULTS.get(name, {}))
    merged.update(section)
    return merged
