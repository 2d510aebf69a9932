import logging
import json
from logging.handlers import RotatingFileHandler
from pathlib import Path
from datetime import datetime, timezone
from typing import Mapping, Optional, Union

from .debug import body_preview, sanitize_headers
from .errors import HTTPError, UnexpectedResponseError, error_context
from .utils.paths import get_logs_dir


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logs."""

    def format(self, record):
        # The message is already a dict, so we just format it as a JSON string
        return json.dumps(record.msg, default=str)


# Module-level state for lazy initialization
_failure_logger: Optional[logging.Logger] = None
_configured_logs_dir: Optional[Path] = None


def configure_failure_logger(logs_dir: Optional[Union[Path, str]] = None) -> None:
    """
    Configure the failure logger to use a specific logs directory.

    Call this before first use if you want to override the default location.
    If not called, the logger will use get_logs_dir() on first use.

    Args:
        logs_dir: Path to the logs directory. If None, uses get_logs_dir().
    """
    global _configured_logs_dir, _failure_logger
    _configured_logs_dir = Path(logs_dir) if logs_dir else None
    # Reset logger so it gets reconfigured on next use
    _failure_logger = None


def _setup_failure_logger(logs_dir: Path) -> logging.Logger:
    logger = logging.getLogger("spotify_library.failures")
    logger.setLevel(logging.INFO)
    logger.propagate = False

    # Clear existing handlers to prevent duplicates on re-setup
    logger.handlers.clear()

    try:
        logs_dir.mkdir(parents=True, exist_ok=True)

        handler = RotatingFileHandler(
            logs_dir / "failures.log",
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=2,
        )
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
    except (OSError, PermissionError) as e:
        logging.warning(f"Cannot create failure log file handler: {e}")
        logger.addHandler(logging.NullHandler())

    return logger


def get_failure_logger() -> logging.Logger:
    """Get the failure logger, initializing it lazily if needed."""
    global _failure_logger

    if _failure_logger is None:
        logs_dir = _configured_logs_dir if _configured_logs_dir else get_logs_dir()
        _failure_logger = _setup_failure_logger(logs_dir)

    return _failure_logger


main_lib_logger = logging.getLogger("spotify_library")


def log_failure(
    method: str,
    path: str,
    error: BaseException,
    request_headers: Optional[Mapping[str, str]] = None,
    include_body: bool = False,
) -> None:
    """
    Write a structured record of a failed call to failures.log and a
    one-line summary to the library logger.

    Args:
        method: HTTP method of the logical call
        path: API path of the logical call
        error: The exception that propagated to the caller
        request_headers: Headers of the last attempt (credentials are redacted)
        include_body: Include a preview of the response body
    """
    raw_body = None
    if isinstance(error, (HTTPError, UnexpectedResponseError)):
        raw_body = body_preview(error.body, include_body)

    error_chain = []
    visited = set()
    current_error: Optional[BaseException] = error
    while current_error is not None and len(error_chain) <= 5:
        if id(current_error) in visited:
            break
        visited.add(id(current_error))
        error_chain.append(
            {"type": type(current_error).__name__, "message": str(current_error)[:2000]}
        )
        current_error = current_error.__cause__ or current_error.__context__

    record = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": method,
        "path": path,
        **error_context(error),
        "response_body": raw_body,
        "request_headers": sanitize_headers(request_headers or {}),
        "error_chain": error_chain if len(error_chain) > 1 else None,
    }

    try:
        get_failure_logger().error(record)
    except OSError as e:
        logging.warning(f"Failed to write to failures.log: {e}")

    main_lib_logger.error(
        f"{method} {path} failed: {type(error).__name__}. See failures.log for details."
    )
