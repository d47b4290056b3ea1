"""
Configuration management for memory curation.

Configuration hierarchy (highest to lowest priority):
1. Overrides passed directly to ``load_settings``
2. The YAML file given by path (or configs/curation.yaml)
3. Defaults declared on the settings models

Example:
    >>> from memory_curation.config import load_settings
    >>> settings = load_settings('configs/curation.yaml', {'service': {'max_workers': 4}})
    >>> settings.consolidation.stages[0]
    'filter_normalization'
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from memory_curation.domain.types import DEFAULT_STAGE_ORDER


logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / 'configs' / 'curation.yaml'


class ConfigurationError(ValueError):
    """Raised for malformed policy, profile or stage configuration."""


class LoggingSettings(BaseModel):
    """Logging section of the curation config."""
    level: str = "INFO"
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    date_format: str = '%Y-%m-%d %H:%M:%S'
    log_to_console: bool = True
    log_file: Optional[str] = None


class ConsolidationSettings(BaseModel):
    """Stage order and per-stage configuration."""
    stages: List[str] = Field(default_factory=lambda: list(DEFAULT_STAGE_ORDER))
    fail_fast: bool = True
    stage_configs: Dict[str, dict] = Field(default_factory=dict)


class SelectionSettings(BaseModel):
    """Selection profiles keyed by name plus the algorithm mapping."""
    default_profile: str = "default"
    profiles: Dict[str, dict] = Field(
        default_factory=lambda: {"default": {"target_total": 24, "minimum_total": 8}}
    )
    algorithm_profiles: Dict[str, str] = Field(default_factory=dict)


class ServiceSettings(BaseModel):
    """Orchestration settings."""
    max_workers: int = Field(default=1, ge=1)
    drop_empty_clusters: bool = True


class CurationSettings(BaseModel):
    """Validated root of the curation configuration."""
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    consolidation: ConsolidationSettings = Field(default_factory=ConsolidationSettings)
    selection: SelectionSettings = Field(default_factory=SelectionSettings)
    service: ServiceSettings = Field(default_factory=ServiceSettings)


def load_config(path: Union[Path, str]) -> Dict[str, Any]:
    """
    Read a YAML configuration file.

    Args:
        path: Path to the YAML file

    Returns:
        Parsed configuration dictionary (empty if the file is empty)
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping, got {type(data).__name__}")

    logger.info(f"Loaded curation config from: {config_path}")
    return data


def load_settings(
    path: Optional[Union[Path, str]] = None,
    overrides: Optional[Dict[str, Any]] = None
) -> CurationSettings:
    """
    Load, merge and validate the curation settings.

    Args:
        path: YAML file; None uses configs/curation.yaml when present
        overrides: Values applied on top of the file contents

    Returns:
        Validated CurationSettings
    """
    if path is not None:
        base = load_config(path)
    elif DEFAULT_CONFIG_PATH.exists():
        base = load_config(DEFAULT_CONFIG_PATH)
    else:
        logger.warning(f"Curation config not found at {DEFAULT_CONFIG_PATH}. Using defaults.")
        base = {}

    merged = merge_configs(base, overrides or {})
    try:
        return CurationSettings.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid curation config: {e}") from e


def setup_logging(settings: Optional[LoggingSettings] = None) -> None:
    """
    Configure the root logger from the logging settings.

    Should be called once at application startup.
    """
    if settings is None:
        settings = LoggingSettings()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.level.upper()))
    root_logger.handlers.clear()

    formatter = logging.Formatter(settings.format, datefmt=settings.date_format)

    if settings.log_to_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        from logging.handlers import RotatingFileHandler

        file_handler = RotatingFileHandler(log_path, maxBytes=10 * 1024 * 1024, backupCount=3)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logger.info(
        f"Logging configured: level={settings.level}, "
        f"console={settings.log_to_console}, file={settings.log_file}"
    )


def merge_configs(*configs: Union[Dict, Path, str]) -> Dict[str, Any]:
    """
    Merge multiple configurations with proper precedence.

    Args:
        *configs: Config dicts or YAML file paths. Later configs override earlier ones

    Returns:
        Merged configuration dictionary
    """
    merged: Dict[str, Any] = {}

    for cfg in configs:
        if isinstance(cfg, (Path, str)):
            cfg_dict = load_config(cfg)
        elif isinstance(cfg, dict):
            cfg_dict = cfg
        else:
            raise TypeError(f"Config must be dict or Path, got {type(cfg)}")

        _deep_merge_dicts(merged, copy.deepcopy(cfg_dict))

    return merged


def _deep_merge_dicts(base: Dict, updates: Dict) -> None:
    """Helper for deep dictionary merge (in-place)."""
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge_dicts(base[key], value)
        else:
            base[key] = value


def deep_merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, returning a new dictionary.

    Example:
        >>> deep_merge({'a': 1, 'nested': {'b': 2}}, {'nested': {'c': 3}})
        {'a': 1, 'nested': {'b': 2, 'c': 3}}
    """
    result = copy.deepcopy(base)
    _deep_merge_dicts(result, updates)
    return result


__all__ = [
    'ConfigurationError',
    'CurationSettings',
    'ConsolidationSettings',
    'SelectionSettings',
    'ServiceSettings',
    'LoggingSettings',
    'load_config',
    'load_settings',
    'setup_logging',
    'merge_configs',
    'deep_merge',
]
