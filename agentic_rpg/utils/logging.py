# ABOUTME: Structured logging configuration using loguru for turn auditing.
# ABOUTME: Supports context fields (state, session, turn, job_id) and file/console output.

import sys
from pathlib import Path
from typing import Any

from loguru import logger


# Default log format with structured context
DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level> | "
    "{extra}"
)

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def setup_logging(
    log_level: str = "INFO",
    log_dir: str | Path | None = None,
    console_output: bool = True,
    file_output: bool = True,
    format_string: str | None = None,
    rotation: str = "100 MB",
    retention: str = "30 days",
    compression: str = "zip"
) -> None:
    """
    Configure loguru for structured logging.

    This setup enables:
    - Structured context fields via logger.bind()
    - Console output with color formatting
    - File output with rotation and compression

    Usage:
        >>> setup_logging(log_level="DEBUG", log_dir="logs")
        >>> logger = get_logger()
        >>> logger.bind(state="PLAN", session="abc").info("Turn started")

    Args:
        log_level: Minimum log level ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        log_dir: Directory for log files (default: "logs")
        console_output: Enable console logging (default: True)
        file_output: Enable file logging (default: True)
        format_string: Custom format string (default: structured format)
        rotation: When to rotate log files (default: "100 MB")
        retention: How long to keep old logs (default: "30 days")
        compression: Compression for rotated logs (default: "zip")

    Raises:
        ValueError: If log_level is invalid
    """
    log_level = log_level.upper()
    if log_level not in VALID_LEVELS:
        raise ValueError(
            f"Invalid log level: '{log_level}'. "
            f"Must be one of: {', '.join(VALID_LEVELS)}"
        )

    # Remove default handler
    logger.remove()

    fmt = format_string or DEFAULT_FORMAT

    if console_output:
        logger.add(
            sys.stderr,
            format=fmt,
            level=log_level,
            colorize=True,
            backtrace=True,
            diagnose=True,
        )

    if file_output:
        log_dir = Path(log_dir) if log_dir is not None else Path("logs")
        log_dir.mkdir(parents=True, exist_ok=True)

        log_file = log_dir / "agentic_rpg_{time:YYYY-MM-DD}.log"
        logger.add(
            str(log_file),
            format=fmt,
            level=log_level,
            rotation=rotation,
            retention=retention,
            compression=compression,
            backtrace=True,
            diagnose=True,
            enqueue=True,  # Thread-safe
        )

    logger.info(
        f"Logging configured: level={log_level}, "
        f"console={console_output}, file={file_output}"
    )


def get_logger() -> Any:
    """
    Get configured loguru logger instance.

    Returns:
        Configured loguru logger instance
    """
    return logger


def _log_at(bound_logger: Any, level: str, message: str) -> None:
    level = level.upper()
    if level == "DEBUG":
        bound_logger.debug(message)
    elif level == "WARNING":
        bound_logger.warning(message)
    elif level == "ERROR":
        bound_logger.error(message)
    else:
        bound_logger.info(message)


def log_turn_event(
    message: str,
    state: str,
    session_id: str,
    turn_number: int,
    level: str = "INFO",
    **extra_context: Any
) -> None:
    """
    Log a turn event with the standard context fields.

    Usage:
        >>> log_turn_event(
        ...     "Plan created",
        ...     state="PLAN",
        ...     session_id="s-1",
        ...     turn_number=3,
        ...     steps=2
        ... )

    Args:
        message: Log message
        state: Current turn state (e.g., "PLAN", "SAFETY")
        session_id: Session identifier
        turn_number: Turn number within the session
        level: Log level (default: "INFO")
        **extra_context: Additional context fields
    """
    context = {
        "state": state,
        "session": session_id,
        "turn": turn_number,
        **extra_context
    }
    _log_at(logger.bind(**context), level, message)


def log_state_transition(
    from_state: str,
    to_state: str,
    session_id: str,
    turn_number: int | None = None,
    duration_ms: float | None = None
) -> None:
    """
    Log a state transition with timing information.

    Args:
        from_state: Previous state
        to_state: New state
        session_id: Session identifier
        turn_number: Optional turn number
        duration_ms: Optional time spent in the previous state
    """
    context: dict[str, Any] = {
        "from_state": from_state,
        "to_state": to_state,
        "session": session_id,
    }

    if turn_number is not None:
        context["turn"] = turn_number

    if duration_ms is not None:
        context["duration_ms"] = round(duration_ms, 2)

    logger.bind(**context).debug(
        f"State transition: {from_state} -> {to_state}"
    )


def log_job_event(
    job_id: str,
    event: str,
    status: str,
    attempts: int = 0,
    level: str = "INFO",
    **extra_context: Any
) -> None:
    """
    Log an image job lifecycle event (queued, retry, ready, failed, swept).

    Args:
        job_id: Image job identifier
        event: Short event name
        status: Job status after the event
        attempts: Attempts made so far
        level: Log level (default: "INFO")
        **extra_context: Additional context fields
    """
    context = {
        "job_id": job_id,
        "status": status,
        "attempts": attempts,
        **extra_context
    }
    _log_at(logger.bind(**context), level, f"Image job {event}: {job_id}")
