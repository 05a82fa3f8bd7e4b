"""
Utility module for MorphMind

Provides:
- Logging setup (main log, audit trail, secret redaction)
- Clock abstraction
"""

from .logger import (
    setup_logging,
    setup_logging_from_config,
    get_logger,
    get_audit_logger,
    SecretRedactingFilter,
)
from .clock import Clock, SystemClock, ensure_utc

__all__ = [
    "setup_logging",
    "setup_logging_from_config",
    "get_logger",
    "get_audit_logger",
    "SecretRedactingFilter",
    "Clock",
    "SystemClock",
    "ensure_utc",
]
