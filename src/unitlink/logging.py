"""Structured logging configuration for unitlink.

Provides JSON-formatted logs for production and human-readable
logs for development.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config import get_settings

# Attributes present on every LogRecord; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        if record.funcName:
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging() -> None:
    """Configure logging based on settings."""
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)

    if settings.log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    logger = get_logger(__name__)
    logger.info(
        "Logging initialized",
        extra={
            "environment": settings.environment,
            "log_level": settings.log_level,
            "log_format": settings.log_format,
        },
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds context to all log messages."""

    def process(
        self, msg: str, kwargs: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        """Process the logging message and add extra context."""
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


def get_context_logger(name: str, **context: Any) -> LoggerAdapter:
    """Get a logger with additional context.

    Args:
        name: Logger name
        **context: Context fields to add to all log messages

    Returns:
        Logger adapter with context

    Usage:
        logger = get_context_logger(__name__, session="worker-1")
        logger.info("Verifying unit")  # Includes session
    """
    return LoggerAdapter(get_logger(name), context)


# =========================
# Convenience functions
# =========================


def log_verification_result(
    unit_name: str,
    role: str,
    state: str,
    can_apply: bool,
    elapsed_ms: int,
    session: str | None = None,
) -> None:
    """Log the outcome of a link-state verification."""
    logger = get_logger("unitlink.verification")
    logger.info(
        f"Verification {state}: {unit_name} ({role})",
        extra={
            "unit_name": unit_name,
            "role": role,
            "state": state,
            "can_apply": can_apply,
            "elapsed_ms": elapsed_ms,
            "session": session,
            "event": "verification_result",
        },
    )


def log_batch_progress(
    processed: int,
    total: int,
    to_link: int,
    session: str | None = None,
) -> None:
    """Log batch verification progress."""
    logger = get_logger("unitlink.verification")
    logger.info(
        f"Batch progress: {processed}/{total}",
        extra={
            "processed": processed,
            "total": total,
            "to_link": to_link,
            "session": session,
            "event": "batch_progress",
        },
    )


def log_resolution_attempt(
    target_kind: str,
    tier: str,
    strategy_id: str,
    outcome: str,
    session: str | None = None,
) -> None:
    """Log a single locator pattern attempt.

    Args:
        target_kind: Kind of control being resolved
        tier: Locator tier of the pattern
        strategy_id: Identifier of the pattern
        outcome: no_match, hidden, invalid_context, error or hit
        session: Session name
    """
    logger = get_logger("unitlink.resolver")
    logger.debug(
        f"Resolve {target_kind} [{tier}/{strategy_id}]: {outcome}",
        extra={
            "target_kind": target_kind,
            "tier": tier,
            "strategy_id": strategy_id,
            "outcome": outcome,
            "session": session,
            "event": "resolution_attempt",
        },
    )


def log_resolution_result(
    target_kind: str,
    tier: str | None,
    strategy_id: str | None,
    attempt: int,
    elapsed_ms: int,
    session: str | None = None,
) -> None:
    """Log the outcome of a resolve call (tier is None when exhausted)."""
    logger = get_logger("unitlink.resolver")
    level = logging.INFO if tier else logging.WARNING
    logger.log(
        level,
        f"Resolved {target_kind} -> {tier or 'exhausted'}",
        extra={
            "target_kind": target_kind,
            "tier": tier,
            "strategy_id": strategy_id,
            "attempt": attempt,
            "elapsed_ms": elapsed_ms,
            "session": session,
            "event": "resolution_result",
        },
    )


def log_retry_attempt(
    operation: str,
    attempt: int,
    max_attempts: int,
    delay_ms: int,
    error: str,
) -> None:
    """Log a failed attempt that will be retried."""
    logger = get_logger("unitlink.retry")
    logger.warning(
        f"Attempt {attempt}/{max_attempts} of {operation} failed: {error}. "
        f"Retrying in {delay_ms}ms",
        extra={
            "operation": operation,
            "attempt": attempt,
            "max_attempts": max_attempts,
            "delay_ms": delay_ms,
            "error": error,
            "event": "retry_attempt",
        },
    )
