import json
import os
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

CONFIG_PATH = "data/cardscan_config.json"

DEFAULT_CONFIG = {
    "api_base_url": "http://localhost:8080/api/v1",
    "request_timeout": 15,
    "camera_index": 0,
    "camera_rotation": 0,
    "ocr_languages": ["en"],
    "ocr_gpu": False,
    "barcode_enabled": True,
    "auth_file": "data/auth.json",
    "scan_log_enabled": True,
    "scan_log_dir": "data/scan_logs",
    "log_dir": "logs",
    "log_level": "INFO"
}

# Environment variable -> (config key, converter)
ENV_OVERRIDES = {
    "CARDSCAN_API_URL": ("api_base_url", str),
    "CAMERA_INDEX": ("camera_index", int),
}

def _apply_env(config: Dict[str, Any]) -> Dict[str, Any]:
    for env_key, (key, convert) in ENV_OVERRIDES.items():
        value = os.getenv(env_key)
        if not value:
            continue
        try:
            config[key] = convert(value)
        except ValueError:
            logger.warning(f"Ignoring invalid {env_key}={value!r}")
    return config

def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    path = path or CONFIG_PATH
    merged = DEFAULT_CONFIG.copy()

    if os.path.exists(path):
        try:
            with open(path, 'r', encoding='utf-8') as f:
                config = json.load(f)
            # Merge with defaults to ensure all keys exist
            merged.update(config)
        except Exception as e:
            logger.error(f"Failed to load config {path}: {e}")
            merged = DEFAULT_CONFIG.copy()

    return _apply_env(merged)

def save_config(config: Dict[str, Any], path: Optional[str] = None):
    path = path or CONFIG_PATH
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=4)
    except Exception as e:
        logger.error(f"Failed to save config {path}: {e}")
