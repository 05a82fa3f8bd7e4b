"""
Logging system for MorphMind

Provides unified logging across all modules with:
- File rotation
- Per-module log levels
- A separate audit trail for secret-key exports
- Redaction of private-key material in every handler
"""

import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler

AUDIT_LOGGER_NAME = "morphmind.audit"

# 32-byte hex secrets; 20-byte public addresses do not match
_SECRET_PATTERN = re.compile(r"\b0x[0-9a-fA-F]{64}\b")
_REDACTED = "0x<redacted>"

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


class SecretRedactingFilter(logging.Filter):
    """Rewrite records so no private key reaches a log sink"""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if _SECRET_PATTERN.search(message):
            record.msg = _SECRET_PATTERN.sub(_REDACTED, message)
            record.args = None
        return True


def _rotating_handler(path: str, level: int, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    handler.addFilter(SecretRedactingFilter())
    return handler


def setup_logging(
    log_file: str = "logs/morphmind.log",
    log_level: str = "INFO",
    max_bytes: int = 10_485_760,  # 10MB
    backup_count: int = 5,
    module_levels: Optional[dict] = None,
    audit_file: Optional[str] = "logs/audit.log",
    console: bool = True
) -> logging.Logger:
    """
    Setup MorphMind logging system

    Args:
        log_file: Path to log file
        log_level: Default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep
        module_levels: Per-module log levels (e.g. {'morphmind.scheduler': 'DEBUG'})
        audit_file: Extra file receiving only audit records (None disables it)
        console: Attach the rich console handler

    Returns:
        Root logger instance
    """
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture everything, filter in handlers
    root_logger.handlers.clear()

    root_logger.addHandler(_rotating_handler(log_file, level, max_bytes, backup_count))

    if console:
        console_handler = RichHandler(
            console=Console(),
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            show_time=False,
            show_path=False
        )
        console_handler.setLevel(level)
        console_handler.addFilter(SecretRedactingFilter())
        root_logger.addHandler(console_handler)

    # Audit records also propagate to the main log
    audit_logger = get_audit_logger()
    audit_logger.handlers.clear()
    audit_logger.setLevel(logging.INFO)
    if audit_file:
        audit_logger.addHandler(_rotating_handler(audit_file, logging.INFO, max_bytes, backup_count))

    if module_levels:
        for module_name, module_level in module_levels.items():
            logging.getLogger(module_name).setLevel(getattr(logging, module_level.upper()))

    # APScheduler logs every job run at INFO
    logging.getLogger('apscheduler').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('alembic').setLevel(logging.WARNING)

    logger = get_logger("morphmind.setup")
    logger.info(f"Logging system initialized - Log file: {log_file} | Audit file: {audit_file or 'off'}")
    logger.info(f"Log level: {log_level} | File rotation: {max_bytes} bytes | Backups: {backup_count}")

    if module_levels:
        logger.debug(f"Per-module log levels: {module_levels}")

    return root_logger


def setup_logging_from_config(config: Any, console: bool = True) -> logging.Logger:
    """Apply the `logging` section of a loaded Config"""
    return setup_logging(
        log_file=config.get('logging.file', 'logs/morphmind.log'),
        log_level=config.get('logging.level', 'INFO'),
        max_bytes=config.get('logging.max_bytes', 10485760),
        backup_count=config.get('logging.backup_count', 5),
        module_levels=config.get('logging.modules'),
        audit_file=config.get('logging.audit_file', 'logs/audit.log'),
        console=console,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get logger instance for a module

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def get_audit_logger() -> logging.Logger:
    """Logger for operations that must leave an audit trail (secret exports)"""
    return logging.getLogger(AUDIT_LOGGER_NAME)
