#!/usr/bin/env python3
"""
Logging for the HypeRate client.

Every module asks for its logger through get_logger(__name__). Records go to
stderr, coloured when stderr is a terminal, and additionally to the file
named by HYPERATE_LOG_FILE when that variable is set.

Channel fields passed through ``extra`` (topic, ref, event, device) are
rendered as a bracketed prefix:

    logger.debug("Join sent", extra={"topic": "hr:abc123", "ref": 42})
    # [DEBUG   ][12:00:01][hyperate.session]: [topic=hr:abc123 ref=42] Join sent
"""

from __future__ import annotations
import logging
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

CONSOLE_FORMAT = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'
FILE_FORMAT = '%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s'

_CONTEXT_FIELDS = ("topic", "ref", "event", "device")

_LEVEL_COLORS = {
    logging.DEBUG: '\033[36m',
    logging.INFO: '\033[32m',
    logging.WARNING: '\033[33m',
    logging.ERROR: '\033[31m',
    logging.CRITICAL: '\033[35m',
}
_RESET = '\033[0m'


def _with_channel_context(record: logging.LogRecord, fmt: Callable[[logging.LogRecord], str]) -> str:
    """Prefix the message with any channel fields passed through ``extra``."""
    context = [
        f"{name}={getattr(record, name)}"
        for name in _CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    ]
    if not context:
        return fmt(record)

    original = record.msg
    record.msg = f"[{' '.join(context)}] {original}"
    try:
        return fmt(record)
    finally:
        record.msg = original


class GenericFormatter(logging.Formatter):
    """Plain formatter with the channel context prefix."""

    def format(self, record: logging.LogRecord) -> str:
        return _with_channel_context(record, super().format)


class ColoredFormatter(GenericFormatter):
    """Terminal formatter: colours the level name by severity."""

    def format(self, record: logging.LogRecord) -> str:
        color = _LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)

        plain = record.levelname
        record.levelname = f"{color}{plain}{_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


# ========================================
#           SETUP
# ========================================

_configured_names = set()
# application-wide level set by set_level; wins over HYPERATE_LOG_LEVEL
_level_override: Optional[str] = None


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Return the logger for ``name``, attaching handlers the first time.

    ``level`` overrides HYPERATE_LOG_LEVEL for this logger only.
    """
    logger = logging.getLogger(name)
    if name not in _configured_names:
        _configured_names.add(name)
        _configure_logger(logger, level)
    return logger


def set_level(level: str) -> None:
    """Apply ``level`` to every logger handed out so far and to those created later."""
    global _level_override
    _level_override = level
    resolved = _resolve_level(level)
    for name in _configured_names:
        logging.getLogger(name).setLevel(resolved)


def configure_root_logging(level: str = "INFO") -> None:
    """
    Give the root logger the same handlers, for third-party libraries such as
    websockets, and move the package's own loggers to ``level``.
    """
    _configure_logger(logging.getLogger(), level)
    set_level(level)


def _configure_logger(logger: logging.Logger, level: Optional[str] = None) -> None:
    logger.setLevel(_resolve_level(level))
    # replacing, not appending, so reconfiguring never duplicates output
    logger.handlers[:] = _build_handlers()
    # pytest's caplog listens on the root logger
    logger.propagate = 'pytest' in sys.modules


def _build_handlers() -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stderr)
    if _is_development() and _stream_supports_color(sys.stderr):
        console.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
    else:
        console.setFormatter(GenericFormatter(CONSOLE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    handlers: List[logging.Handler] = [console]

    log_file = os.getenv("HYPERATE_LOG_FILE")
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(GenericFormatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        handlers.append(file_handler)

    return handlers


def _resolve_level(level: Optional[str]) -> int:
    name = level or _level_override or os.getenv("HYPERATE_LOG_LEVEL")
    if name:
        resolved = logging.getLevelName(name.upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    # verbose while developing or under test
    return logging.DEBUG if _is_development() else logging.INFO


def _is_development() -> bool:
    return os.getenv('PYTHON_ENV', '').lower() in ('dev', 'development') or 'pytest' in sys.modules


def _stream_supports_color(stream: Any) -> bool:
    isatty = getattr(stream, "isatty", None)
    if isatty is None or not isatty():
        return False
    if os.getenv("TERM", "") == "dumb":
        return False
    if sys.platform == "win32":
        return any(os.getenv(var) for var in ("ANSICON", "WT_SESSION")) or os.getenv("TERM_PROGRAM") == "vscode"
    return True


# ========================================
#           PACKET LOGGING
# ========================================

def log_packet(logger: logging.Logger, level: str, message: str,
               envelope: Optional[Dict[str, Any]] = None,
               **context: Any) -> None:
    """
    Log a message about one envelope, carrying its event/topic/ref as context.

    Example:
        log_packet(logger, "debug", "Reply for unknown ref ignored", envelope.to_dict())
    """
    fields: Dict[str, Any] = {}
    if envelope:
        fields = {key: envelope.get(key) for key in ("event", "topic", "ref")}
    fields.update(context)
    logger.log(logging.getLevelName(level.upper()), message, extra=fields)
