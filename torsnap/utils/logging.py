"""
Structured logging for torsnap.

structlog over stdlib logging, written to stderr and to a daily file under
``logs_dir``. Monitoring levels (info, warning, error, success) are carried
through to the rendered ``level`` field: ``success`` has no stdlib
counterpart, so it is emitted at INFO and tagged with ``outcome="success"``.
Every entry inside a run carries its ``run_id`` via ``LogContext``.
"""

import logging
import sys
from collections.abc import Mapping
from contextvars import Token
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from torsnap.utils.config import get_settings, resolve_path

SUCCESS = "success"

# Marker key consumed by _render_level; never reaches the output.
_LEVEL_KEY = "_torsnap_level"

# Long string fields (page previews, curl stderr) are cut to this size.
MAX_FIELD_CHARS = 500

_UNTRUNCATED = frozenset(("event", "exception", "stack"))

_METHODS = {
    "info": "info",
    "warning": "warning",
    "error": "error",
    SUCCESS: "info",
}


def _render_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Set ``level`` from the monitoring level when one was given."""
    level = event_dict.pop(_LEVEL_KEY, None) or method_name
    if level == SUCCESS:
        event_dict.setdefault("outcome", SUCCESS)
    event_dict["level"] = level.upper()
    return event_dict


def _truncate_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for key, value in event_dict.items():
        if key in _UNTRUNCATED or not isinstance(value, str) or len(value) <= MAX_FIELD_CHARS:
            continue
        event_dict[key] = f"{value[:MAX_FIELD_CHARS]}... ({len(value)} chars)"
    return event_dict


def configure_logging(
    log_level: str | None = None,
    log_file: str | Path | None = None,
    json_format: bool | None = None,
) -> Path:
    """Configure structured logging.

    Args:
        log_level: Minimum stdlib level name. Uses settings if None.
        log_file: Log file path. Defaults to ``torsnap_YYYYMMDD.log`` in ``logs_dir``.
        json_format: JSON lines (True) or console rendering (False). Uses settings if None.

    Returns:
        Path of the log file.
    """
    settings = get_settings()

    if log_level is None:
        log_level = settings.general.log_level

    if json_format is None:
        json_format = settings.general.log_json

    if log_file is None:
        log_dir = resolve_path(settings.general.logs_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"torsnap_{datetime.now().strftime('%Y%m%d')}.log"
    log_file = Path(log_file)

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
        force=True,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        _render_level,
        _truncate_fields,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_format:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return log_file


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_at(logger: Any, level: str, message: str, **fields: Any) -> None:
    """Log ``message`` at a monitoring level (info, warning, error, success).

    Unknown levels are logged at INFO. An ``event`` field would collide with
    the message and is dropped.
    """
    fields.pop("event", None)
    method = _METHODS.get(level, "info")
    fields[_LEVEL_KEY] = level if level in _METHODS else method
    getattr(logger, method)(message, **fields)


class LogContext:
    """Binds fields (typically ``run_id``) to every entry logged in the block.

    Leaving the block restores whatever was bound before, so nested
    contexts with the same key do not clobber the outer value.

    Example:
        with LogContext(run_id=run.run_id):
            logger.info("Trying strategy")
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._tokens: Mapping[str, Token[Any]] = {}

    def __enter__(self) -> "LogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self.fields)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
        self._tokens = {}
