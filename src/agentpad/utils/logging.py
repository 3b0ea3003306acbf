"""Logging setup for AgentPad.

Records go to ``~/.agentpad/logs/agentpad.log`` (rotated) and, optionally, to
stderr. Every handler carries a :class:`SecretRedactionFilter` so provider keys
that end up in debug payloads never reach disk.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
from pathlib import Path

__all__ = ["SecretRedactionFilter", "setup_logging", "get_log_path"]

LOG_FILE_NAME = "agentpad.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_DEFAULT_LOG_DIR = Path.home() / ".agentpad" / "logs"
# Chatty at DEBUG; clamped to WARNING unless the root level is stricter.
_THIRD_PARTY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_SECRET_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+", re.IGNORECASE),
    re.compile(r"\b(sk-)[A-Za-z0-9_\-]{8,}"),
    re.compile(r"\b(fernet:)[A-Za-z0-9_\-=]+"),
)

_log_path: Path | None = None


class SecretRedactionFilter(logging.Filter):
    """Masks bearer tokens, ``sk-`` keys and vault ciphertext in formatted messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = message
        for pattern in _SECRET_PATTERNS:
            redacted = pattern.sub(r"\1[redacted]", redacted)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install the AgentPad handlers on the root logger and return the log file path.

    Repeated calls are no-ops unless ``force`` is set, in which case the
    existing root handlers are replaced.
    """

    global _log_path
    if _log_path is not None and not force:
        return _log_path

    directory = Path(log_dir or os.environ.get("AGENTPAD_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / LOG_FILE_NAME

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    redaction = SecretRedactionFilter()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(redaction)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)

    third_party_level = max(level, logging.WARNING)
    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    _log_path = path
    return path


def get_log_path() -> Path | None:
    """Return the active log file, or ``None`` before :func:`setup_logging` runs."""

    return _log_path
