"""
Structured Logging with Correlation IDs

Every log line written inside a reconciliation pass carries the ids needed to
find the record it is about:
- run_id: one recompute pass
- strategy: profile resolution strategy of that pass
- stage: resolve, allocate, aggregate, anomalies or statement
- profile_key: the resolved supplier profile
- sr_no / payment_id: the purchase entry or payment being processed

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(run_id="run-001", stage="allocate"):
        logger.info("Allocating payments", extra_fields={"payments": 12})
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, asdict, replace
from datetime import datetime
from typing import Any, Dict, Iterator, Optional


PIPELINE_LOGGERS = ("profile_resolver", "reconciliation", "api", "storage")
NOISY_LOGGERS = ("uvicorn.access", "httpx")


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """Ids attached to every log line of one reconciliation pass."""
    run_id: Optional[str] = None
    strategy: Optional[str] = None
    stage: Optional[str] = None
    profile_key: Optional[str] = None
    sr_no: Optional[str] = None
    payment_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Set fields only."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        """Copy with the given (non-None) fields replaced."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})


_correlation_context: ContextVar[CorrelationContext] = ContextVar(
    "reconciliation_correlation",
    default=CorrelationContext(),
)


def get_correlation_context() -> CorrelationContext:
    return _correlation_context.get()


@contextmanager
def with_correlation(**kwargs) -> Iterator[CorrelationContext]:
    """
    Scope correlation ids to a block; nested blocks add to the outer ids.

    Usage:
        with with_correlation(run_id="run-001"):
            with with_correlation(profile_key="ram kumar|shyam lal|rampur"):
                logger.info("Aggregating")  # run_id and profile_key attached
    """
    token = _correlation_context.set(get_correlation_context().merge(**kwargs))
    try:
        yield _correlation_context.get()
    finally:
        _correlation_context.reset(token)


class CorrelationFilter(logging.Filter):
    """Copies the current correlation ids onto each record as ``correlation``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation = get_correlation_context()
        if not hasattr(record, "extra_fields"):
            record.extra_fields = {}
        return True


def _record_context(record: logging.LogRecord) -> CorrelationContext:
    return getattr(record, "correlation", None) or get_correlation_context()


# =============================================================================
# Formatters
# =============================================================================

class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    {"timestamp": "2024-03-01T10:00:00.000Z", "level": "INFO",
     "logger": "reconciliation.engine", "message": "Recompute finished",
     "run_id": "a1b2c3d4e5f6", "strategy": "strict", "duration_ms": 15.2}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat(timespec="milliseconds") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(_record_context(record).to_dict())
        log_data.update(getattr(record, "extra_fields", None) or {})

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Single-line text with the ids that matter when reading a terminal.

    2024-03-01 10:00:00 [INFO ] reconciliation.allocation [a1b2c3d4/allocate/S00010]: ...
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = _record_context(record)

        parts = [ctx.run_id[:8] if ctx.run_id else None, ctx.stage, ctx.sr_no]
        if ctx.payment_id:
            parts.append(f"pay:{ctx.payment_id}")
        correlation = "/".join(p for p in parts if p) or "-"

        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        msg = f"{timestamp} [{record.levelname:5}] {record.name} [{correlation}]: {record.getMessage()}"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


# =============================================================================
# Logger with Correlation Support
# =============================================================================

class CorrelatedLogger:
    """
    Thin wrapper over a stdlib logger accepting ``extra_fields=`` per call.

    The extra fields end up in the JSON output next to the correlation ids;
    the human-readable formatter ignores them.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, args, extra_fields=None, exc_info=False):
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(
            level,
            msg,
            *args,
            exc_info=exc_info,
            extra={"extra_fields": dict(extra_fields or {})},
            stacklevel=3,
        )

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs["exc_info"] = True
        self._log(logging.ERROR, msg, args, **kwargs)

    def setLevel(self, level):
        self._logger.setLevel(level)

    def isEnabledFor(self, level):
        return self._logger.isEnabledFor(level)


# =============================================================================
# Logger Factory
# =============================================================================

_loggers: Dict[str, CorrelatedLogger] = {}
_configured = False
_handler: Optional[logging.Handler] = None


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    force: bool = False,
):
    """
    Install the correlated stdout handler on the root logger.

    Args:
        level: Level for the handler and the pipeline loggers
        json_format: StructuredFormatter if True, else HumanReadableFormatter
        force: Replace a configuration made earlier (e.g. at import time)
    """
    global _configured, _handler

    if _configured and not force:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationFilter())
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
    root.setLevel(level)
    root.addHandler(handler)
    _handler = handler

    for logger_name in PIPELINE_LOGGERS:
        logging.getLogger(logger_name).setLevel(level)
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> CorrelatedLogger:
    """Correlated logger for a module (typically ``get_logger(__name__)``)."""
    if name not in _loggers:
        if not _configured:
            configure_logging()
        _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return _loggers[name]
