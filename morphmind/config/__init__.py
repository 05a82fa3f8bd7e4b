"""
Configuration module for MorphMind

Provides unified configuration loading from:
1. config/config.yaml (master configuration)
2. .env file (deployment overrides)
3. Environment variables (override)
"""

from .loader import load_config, parse_sources, Config, SourceSpec

__all__ = ["load_config", "parse_sources", "Config", "SourceSpec"]
