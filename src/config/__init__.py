"""
Configuration Module for blogwatch.

This module provides configuration loading and management for the blogwatch
daemon. Configuration is loaded from config.yml and merged over defaults so
every section is always present.

Usage:
    >>> from config import load_config
    >>> config = load_config()
    >>> if config["webmention"]["send_enabled"]:
    ...     # Send webmentions for new documents
"""
import copy
import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional


logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yml"
CONFIG_ENV_VAR = "BLOGWATCH_CONFIG"
DEFAULT_EXTENSIONS = [".md", ".markdown", ".mdown", ".txt"]


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from config.yml file.

    Args:
        config_path: Path to config.yml file. If None, uses BLOGWATCH_CONFIG
                    or looks in the current directory and parent directories.

    Returns:
        Dictionary containing configuration settings, merged over defaults

    Example:
        >>> config = load_config()
        >>> config["site"]["url"]
        'http://localhost:5000'
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR) or None

    if config_path is None:
        # Try to find config.yml in current directory or parent directories
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            candidate = parent / CONFIG_FILENAME
            if candidate.exists():
                config_path = str(candidate)
                break

    if config_path is None:
        logger.warning("config.yml not found, using default configuration")
        return get_default_config()

    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        logger.warning(f"Configuration file not found: {config_path}")
        return get_default_config()
    except yaml.YAMLError as e:
        logger.error(f"Error parsing configuration file: {e}")
        return get_default_config()

    if config is None:
        config = {}
    if not isinstance(config, dict):
        logger.warning("Configuration root must be a mapping, using default configuration")
        return get_default_config()

    logger.info(f"Loaded configuration from {config_path}")
    return merge_config(get_default_config(), config)


def get_default_config() -> Dict[str, Any]:
    """Return default configuration when config.yml is not available.

    Returns:
        Dictionary with default configuration values
    """
    return {
        "site": {
            "url": "http://localhost:5000",
            "title": "blogwatch",
        },
        "paths": {
            "source_dir": "./content",
            "output_dir": "./public",
            "data_dir": "./data",
        },
        "watch": {
            "extensions": list(DEFAULT_EXTENSIONS),
            "debounce_seconds": 0.5,
            "max_wait_seconds": 5.0,
            "poll_interval": 1.0,
        },
        "webmention": {
            "send_enabled": False,
            "timeout": 10.0,
            "allow_private_targets": False,
        },
        "webmention_receiver": {
            "enabled": False,
            "host": "0.0.0.0",
            "port": 5000,
            "workers": 1,
            "endpoint_url": "",
        },
        "cors": {
            "enabled": False,
            "origins": [],
        },
    }


def merge_config(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``.

    Nested mappings are merged key by key; any other value in ``override``
    replaces the one in ``base``.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged

