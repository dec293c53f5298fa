"""Structured logging utilities.

Log calls attach structured fields with ``extra={"extra_fields": {...}}``.
:class:`LogContext` adds fields of its own (a job id, say) to every record
created while it is active; those live under ``context_fields`` so they never
collide with per-call ``extra_fields``.
"""

import logging
import logging.handlers
import json
import sys
from typing import Any, Callable, Dict, Optional
from datetime import datetime, timezone
from pathlib import Path

EXTRA_FIELDS_ATTR = "extra_fields"
CONTEXT_FIELDS_ATTR = "context_fields"


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the structured fields of ``record``.

    Context fields come first; per-call fields override them on key clashes.
    """
    fields: Dict[str, Any] = {}
    fields.update(getattr(record, CONTEXT_FIELDS_ATTR, None) or {})
    fields.update(getattr(record, EXTRA_FIELDS_ATTR, None) or {})
    return fields


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        # Fields never replace the standard keys above
        for key, value in record_fields(record).items():
            log_data.setdefault(key, value)

        return json.dumps(log_data, default=str)


class DetailedFormatter(logging.Formatter):
    """Human-readable detailed formatter; structured fields are appended as key=value."""

    def __init__(self) -> None:
        fmt = (
            "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | "
            "%(message)s"
        )
        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        fields = record_fields(record)
        if not fields:
            return text

        rendered = " ".join(f"{key}={value}" for key, value in fields.items())
        head, sep, tail = text.partition("\n")
        return f"{head} [{rendered}]{sep}{tail}"


class SimpleFormatter(logging.Formatter):
    """Simple formatter for console output."""

    def __init__(self) -> None:
        super().__init__(fmt="%(levelname)-8s | %(name)s | %(message)s")


_FORMATTERS: Dict[str, Callable[[], logging.Formatter]] = {
    "json": StructuredFormatter,
    "detailed": DetailedFormatter,
    "simple": SimpleFormatter,
}


def setup_logging(
    level: str = "INFO",
    format: str = "simple",
    log_file: Optional[Path] = None,
    max_file_size_mb: int = 10,
    backup_count: int = 5,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Console format (simple, detailed, json)
        log_file: Optional log file path; file records are always JSON
        max_file_size_mb: Max log file size in MB before rotation
        backup_count: Number of rotated files to keep
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    # stderr, so stdout stays free for the result line
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(_FORMATTERS.get(format, SimpleFormatter)())
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)


class LogContext:
    """Context manager adding structured fields to records of a logger subtree.

    Records created inside the block by ``logger`` or any of its children get
    ``fields`` in their ``context_fields``. Contexts nest; inner fields win.

    Example:
        >>> with LogContext(logging.getLogger("mailbundle"), job_id=job.job_id):
        ...     await orchestrator.process_archive(job)
    """

    def __init__(self, logger: logging.Logger, **fields: Any) -> None:
        self.logger = logger
        self.fields = fields
        self.old_factory: Optional[Callable[..., logging.LogRecord]] = None

    def _applies_to(self, name: str) -> bool:
        scope = self.logger.name
        return scope == "root" or name == scope or name.startswith(f"{scope}.")

    def __enter__(self) -> "LogContext":
        old_factory = self.old_factory = logging.getLogRecordFactory()

        def record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
            record = old_factory(*args, **kwargs)
            if self._applies_to(record.name):
                merged = dict(getattr(record, CONTEXT_FIELDS_ATTR, None) or {})
                merged.update(self.fields)
                setattr(record, CONTEXT_FIELDS_ATTR, merged)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        logging.setLogRecordFactory(self.old_factory)
