"""Standardized error handling utilities."""

import logging
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def log_and_ignore(
    error: BaseException,
    message: str,
    *,
    logger_instance: Optional[logging.Logger] = None,
    level: int = logging.WARNING,
) -> None:
    """
    Log an error and ignore it (don't re-raise).

    Use for non-critical errors that should not interrupt the flow.
    """
    log = logger_instance or logger
    log.log(level, f"{message}: {error}")


def safe_call(
    func: Optional[Callable[..., T]],
    *args: Any,
    default: Optional[T] = None,
    error_message: str = "Error in function call",
    **kwargs: Any,
) -> Optional[T]:
    """
    Call a side-channel function, logging instead of raising on failure.

    ``func`` may be None, in which case ``default`` is returned.
    """
    if func is None:
        return default
    try:
        return func(*args, **kwargs)
    except Exception as e:
        log_and_ignore(e, error_message)
        return default
