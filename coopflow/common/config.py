"""YAML configuration loading for coopflow.

Stage chains and loan product tiers are deployment configuration. They are
kept in a YAML file whose values may reference environment variables.

Example::

    stages:
      WITHDRAWAL:
        allow_self_chaining: false
        chain:
          - [ACCOUNTANT, APPROVED_BY_ACCOUNTANT]
          - [SUPERVISOR, APPROVED_BY_SUPERVISOR]
          - [MANAGER, APPROVED_BY_MANAGER]
          - [ACCOUNTANT, DISBURSED]
    loan_products:
      - name: Basic
        min_total_contributions: "0"
        ...
"""

import os
from pathlib import Path
from typing import Any, Dict

import yaml


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid YAML
        TypeError: If the document root is not a mapping
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_file.open("r") as f:
        config = yaml.safe_load(f)

    if config is None:
        config = {}

    if not isinstance(config, dict):
        raise TypeError(
            f"Configuration root must be a mapping, got {type(config).__name__}"
        )

    return _expand_env_vars(config)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj
