"""Logging configuration for SecureVault.

Provides consistent logging across all modules with:
- Console output with colors (via Rich), on stderr
- File logging for debugging
- Configurable log levels

Passwords, key material and one-time codes must never be passed to a
logger. Every handler installed here also carries a RedactSecretsFilter
that masks anything shaped like a secret in case one slips through.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


# Global console for log output (stderr keeps command output clean)
console = Console(stderr=True)

# Default log format
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
SIMPLE_FORMAT = "%(message)s"

ROOT_LOGGER = "secure_vault"

REDACTED = "[REDACTED]"

# (pattern, replacement) pairs applied to every formatted message
SECRET_PATTERNS = [
    # "<b64 32-byte key>.<b64 12-byte iv>"
    (re.compile(r"[A-Za-z0-9+/]{43}=\.[A-Za-z0-9+/]{16}"), REDACTED),
    # Stored password hashes
    (re.compile(r"pbkdf2_sha256\$\d+\$[^\s$]+\$[^\s$]+"), f"pbkdf2_sha256${REDACTED}"),
    # TOTP secret inside an otpauth:// URI
    (re.compile(r"(secret=)[A-Za-z2-7]+=*", re.IGNORECASE), rf"\g<1>{REDACTED}"),
]


class RedactSecretsFilter(logging.Filter):
    """Mask key material, password hashes and TOTP secrets in log records.

    The record is never dropped; only its message text is rewritten.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def redact(text: str) -> str:
    """Replace anything that looks like a secret in text."""
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    rich_output: bool = True,
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file to write logs to
        rich_output: Whether to use Rich for console output

    Returns:
        Configured package logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(log_level)

    # Clear existing handlers
    logger.handlers.clear()

    if rich_output:
        console_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
        )
        console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    console_handler.setLevel(log_level)
    console_handler.addFilter(RedactSecretsFilter())
    logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(logging.DEBUG)  # File gets all messages
        file_handler.addFilter(RedactSecretsFilter())
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        name: Module name (e.g., "secure_vault.auth.session")

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
