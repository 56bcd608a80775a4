"""
Configuration Module
Resolves import settings from explicit overrides, environment variables
and the YAML config file, in that order.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv
from loguru import logger


DEFAULT_CONFIG_PATH = "config/config.yaml"


@dataclass
class ImportSettings:
    database_url: str = "sqlite:///./data/catalog.sqlite"
    source_csv: str = "./data/input.csv"
    report_dir: str = "./data/output"
    chunk_size: int = 1000
    spool_max_size: int = 8 * 1024 * 1024
    max_reported_rejections: int = 1000
    log_level: str = "INFO"
    log_file: Optional[str] = "./logs/import_{date}.log"
    broker_url: str = "memory://"
    queue_eager: bool = True

    def __post_init__(self):
        if int(self.chunk_size) < 1:
            raise ValueError(f"chunk_size must be a positive integer, got {self.chunk_size}")


# setting -> (environment variable, section in config.yaml, key in section)
_SOURCES = {
    'database_url': ('CATALOG_DB_URL', 'database', 'url'),
    'source_csv': ('SOURCE_CSV_PATH', 'files', 'source_csv'),
    'report_dir': ('OUTPUT_DIR', 'files', 'output_dir'),
    'chunk_size': ('IMPORT_CHUNK_SIZE', 'import', 'chunk_size'),
    'spool_max_size': ('IMPORT_SPOOL_MAX_SIZE', 'import', 'spool_max_size'),
    'max_reported_rejections': (None, 'import', 'max_reported_rejections'),
    'log_level': ('LOG_LEVEL', 'logging', 'level'),
    'log_file': ('LOG_FILE', 'logging', 'log_file'),
    'broker_url': ('CELERY_BROKER_URL', 'queue', 'broker_url'),
    'queue_eager': ('QUEUE_EAGER', 'queue', 'eager'),
}

_INT_SETTINGS = {'chunk_size', 'spool_max_size', 'max_reported_rejections'}


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> dict:
    """Load configuration from YAML file."""
    try:
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning(f"Config file not found: {config_path}")
        return {}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'y', 'on')


def load_settings(
    config_path: str = DEFAULT_CONFIG_PATH,
    overrides: Optional[Mapping[str, Any]] = None,
) -> ImportSettings:
    """
    Build ImportSettings.

    Priority: overrides > environment variables > config file > defaults.

    Args:
        config_path: Path to configuration YAML file
        overrides: Values taken as-is when not None (e.g. command line args)

    Returns:
        Resolved ImportSettings
    """
    load_dotenv()
    config = load_config(config_path)
    overrides = overrides or {}

    values: Dict[str, Any] = {}
    for name, (env_var, section, key) in _SOURCES.items():
        value = overrides.get(name)
        if value is None and env_var:
            value = os.getenv(env_var)
        if value is None:
            value = (config.get(section) or {}).get(key)
        if value is None:
            continue

        if name in _INT_SETTINGS:
            value = int(value)
        elif name == 'queue_eager':
            value = _to_bool(value)
        values[name] = value

    return ImportSettings(**values)
