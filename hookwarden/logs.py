"""Logging setup and secret redaction.

Commands and tool inputs are logged verbatim, so every handler installed
here carries a RedactingFilter.
"""

import logging
import os
import re
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
HOOK_LOG_PATH = Path.home() / ".pi" / "agent" / "hookwarden.log"
DEBUG_ENV_VAR = "HOOKWARDEN_DEBUG"

# (pattern, replacement) pairs applied in order to every log message
SECRET_PATTERNS = [
    (re.compile(r'(://[^:/\s]+:)[^@\s]+(@)'), r'\1***\2'),
    (
        re.compile(
            r'(\b(?:PGPASSWORD|MYSQL_PWD|PASSWORD|API_KEY|SECRET|TOKEN|AWS_SECRET_ACCESS_KEY)\s*=\s*)[^\s"\']+',
            re.IGNORECASE,
        ),
        r'\1***',
    ),
    (re.compile(r'(--(?:password|token|secret|api-key|apikey)[\s=])(?:"[^"]*"|\'[^\']*\'|\S+)', re.IGNORECASE), r'\1***'),
    (re.compile(r'(Bearer\s+)\S+', re.IGNORECASE), r'\1***'),
    (re.compile(r'\bAKIA[0-9A-Z]{16}\b'), '***'),
    (re.compile(r'\bsk-[a-zA-Z0-9_-]{20,}\b'), '***'),
]


def mask_secrets(text: str) -> str:
    """Mask passwords, keys and tokens in a log message.

    >>> mask_secrets("PGPASSWORD=hunter2 psql")
    'PGPASSWORD=*** psql'
    >>> mask_secrets("curl -H 'Authorization: Bearer abc.def'")
    "curl -H 'Authorization: Bearer ***"
    >>> mask_secrets("postgres://admin:s3cret@db:5432/app")
    'postgres://admin:***@db:5432/app'
    """
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class RedactingFilter(logging.Filter):
    """Rewrite each record's final message with secrets masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = mask_secrets(message)
        record.args = None
        return True


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(RedactingFilter())


def setup_file_logging(path: Optional[Path] = None, debug: Optional[bool] = None) -> Optional[logging.Handler]:
    """Send hookwarden's logs to a file instead of a stream.

    Used when stdout/stderr belong to a hook protocol. Returns the handler,
    or None if the log file cannot be opened.
    """
    path = path or HOOK_LOG_PATH
    if debug is None:
        debug = os.environ.get(DEBUG_ENV_VAR, "") == "1"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    except OSError:
        return None

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RedactingFilter())
    package_logger = logging.getLogger("hookwarden")
    package_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    package_logger.addHandler(handler)
    package_logger.propagate = False
    return handler
