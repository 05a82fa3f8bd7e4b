"""
Configuration Loader for MorphMind

Loads configuration from YAML file with environment variable interpolation.
Follows Fast Fail principle - crashes immediately if config is invalid.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError


class Config(BaseModel):
    """
    Master configuration model for MorphMind

    Missing or invalid config will cause the engine to crash at startup (Fast Fail)
    """

    # Raw config data (loaded from YAML)
    _raw_config: Dict[str, Any] = {}

    class Config:
        """Pydantic config"""
        arbitrary_types_allowed = True
        extra = "allow"  # Allow extra fields from YAML

    def __init__(self, **data):
        """Initialize with raw config data"""
        super().__init__(**data)
        self._raw_config = data

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get nested config value using dot notation

        Example:
            config.get('staking.min_amount')  # Returns 0.1
            config.get('rates.floor')  # Returns 5

        Args:
            key_path: Dot-separated path to config key
            default: Default value if key not found

        Returns:
            Config value or default
        """
        keys = key_path.split('.')
        value = self._raw_config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_required(self, key_path: str) -> Any:
        """
        Get required config value - raises error if missing

        Raises:
            ValueError: If key not found
        """
        value = self.get(key_path)
        if value is None:
            raise ValueError(f"Required config key not found: {key_path}")
        return value


class SourceSpec(BaseModel):
    """One yield source entry from the `sources` config list."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    rate: float
    volume: float = Field(default=0.0, ge=0)
    active: bool = True


def _interpolate_env_vars(config_str: str) -> str:
    """
    Replace ${VAR_NAME} placeholders with environment variables

    Supports:
    - ${VAR_NAME} - Required, crashes if missing
    - ${VAR_NAME:-} - Optional, empty string if missing
    - ${VAR_NAME:-default} - Optional, uses default if missing

    Raises:
        ValueError: If required env var is missing
    """
    pattern = re.compile(r'\$\{(\w+)(:-([^}]*))?\}')

    def replacer(match):
        var_name = match.group(1)
        has_default = match.group(2) is not None
        default_value = match.group(3) if match.group(3) else ""

        value = os.getenv(var_name)

        if value is None:
            if has_default:
                return default_value
            else:
                raise ValueError(
                    f"Environment variable '{var_name}' is required but not set. "
                    f"Check your .env file or environment."
                )

        return value

    return pattern.sub(replacer, config_str)


# Global config cache to avoid duplicate loads
_cached_config: Config | None = None


def load_config(config_path: str | Path = "config/config.yaml") -> Config:
    """
    Load MorphMind configuration from YAML file (cached)

    Process:
    1. Return cached config if available
    2. Load .env file (if exists)
    3. Read YAML config
    4. Interpolate environment variables (${VAR})
    5. Parse and validate YAML
    6. Cache and return Config object

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config is invalid or env vars missing
        yaml.YAMLError: If YAML parsing fails
    """
    global _cached_config

    if _cached_config is not None:
        return _cached_config

    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            f"Expected location: {config_path.absolute()}"
        )

    with open(config_path, 'r') as f:
        config_str = f.read()

    try:
        config_str = _interpolate_env_vars(config_str)
    except ValueError as e:
        raise ValueError(
            f"Failed to interpolate environment variables in {config_path}: {e}"
        ) from e

    try:
        config_dict = yaml.safe_load(config_str)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(
            f"Failed to parse YAML config {config_path}: {e}"
        ) from e

    if not isinstance(config_dict, dict):
        raise ValueError(
            f"Config file {config_path} must contain a YAML dictionary, "
            f"got {type(config_dict)}"
        )

    config = Config(**config_dict)
    _validate_config(config)

    _cached_config = config

    return config


def parse_sources(config: Config) -> List[SourceSpec]:
    """
    Validate the `sources` list into SourceSpec entries.

    Raises:
        ValueError: If an entry is malformed, duplicated, or outside the rate bounds
    """
    floor = float(config.get_required('rates.floor'))
    ceiling = float(config.get_required('rates.ceiling'))

    specs = []
    seen = set()
    for entry in config.get('sources') or []:
        try:
            spec = SourceSpec(**entry)
        except (ValidationError, TypeError) as e:
            raise ValueError(f"Invalid source entry {entry!r}: {e}") from e

        if spec.id in seen:
            raise ValueError(f"Duplicate source id '{spec.id}'")
        if not floor <= spec.rate <= ceiling:
            raise ValueError(
                f"Source '{spec.id}' rate {spec.rate} outside [{floor}, {ceiling}]"
            )
        seen.add(spec.id)
        specs.append(spec)

    return specs


def _validate_config(config: Config) -> None:
    """
    Validate critical configuration settings

    Raises:
        ValueError: If validation fails
    """
    min_amount = float(config.get_required('staking.min_amount'))
    max_amount = float(config.get_required('staking.max_amount'))
    if min_amount <= 0 or min_amount > max_amount:
        raise ValueError(
            f"staking.min_amount must be > 0 and <= staking.max_amount, "
            f"got min={min_amount}, max={max_amount}"
        )

    floor = float(config.get_required('rates.floor'))
    ceiling = float(config.get_required('rates.ceiling'))
    if floor >= ceiling:
        raise ValueError(
            f"rates.floor must be below rates.ceiling, got {floor} >= {ceiling}"
        )

    if float(config.get_required('reallocation.threshold')) < 0:
        raise ValueError("reallocation.threshold must be >= 0")

    for key in ('scheduler.compound_interval_seconds', 'scheduler.notification_interval_seconds'):
        if float(config.get_required(key)) <= 0:
            raise ValueError(f"{key} must be > 0")

    parse_sources(config)
