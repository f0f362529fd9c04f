"""Rich logging with repo/step context and better formatting."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "branchspace"


class WorkspaceLogFormatter(logging.Formatter):
    """Custom formatter with repository and step context."""

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with context."""
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        repo_context = ""
        if hasattr(record, "repo"):
            repo_context = f"[{record.repo}] "

        step_context = ""
        if hasattr(record, "step"):
            step_context = f"[{record.step}] "

        if self.use_colors:
            level_colors = {
                "DEBUG": "\033[36m",      # Cyan
                "INFO": "\033[32m",       # Green
                "WARNING": "\033[33m",    # Yellow
                "ERROR": "\033[31m",      # Red
                "CRITICAL": "\033[35m",   # Magenta
            }
            reset = "\033[0m"
            level_color = level_colors.get(record.levelname, "")
        else:
            level_color = ""
            reset = ""

        message = (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"{repo_context}{step_context}{record.getMessage()}"
        )
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that adds repo/step context to all log messages."""

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})
        self.current_repo: Optional[str] = None
        self.current_step: Optional[str] = None

    def set_context(self, repo: Optional[str] = None, step: Optional[str] = None):
        """Set current repo/step context for logging."""
        if repo:
            self.current_repo = repo
        if step is not None:
            self.current_step = step

    def clear_context(self):
        self.current_repo = None
        self.current_step = None

    def process(self, msg, kwargs):
        """Add context to log record."""
        extra = kwargs.get("extra", {})

        if self.current_repo:
            extra["repo"] = self.current_repo
        if self.current_step:
            extra["step"] = self.current_step

        kwargs["extra"] = extra
        return msg, kwargs

    def step_started(self, step: str, repo: Optional[str] = None):
        self.set_context(repo=repo, step=step)
        self.info(f"▶️  {step}")

    def step_completed(self, step: str, duration_seconds: float):
        self.info(f"✅ {step} ({duration_seconds:.2f}s)")


def setup_rich_logging(
    log_level: str = "INFO",
    log_dir: Optional[Path] = None,
    use_colors: Optional[bool] = None,
) -> ContextLogger:
    """
    Setup logging for the ``branchspace`` logger tree.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Also write a plain-text log file here when given
        use_colors: Force ANSI colors on/off (defaults to stderr being a TTY)

    Returns:
        ContextLogger wrapping the package root logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    if use_colors is None:
        use_colors = sys.stderr.isatty() if hasattr(sys.stderr, "isatty") else False

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(WorkspaceLogFormatter(use_colors=use_colors))
    logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / "branchspace.log")
        file_handler.setFormatter(WorkspaceLogFormatter(use_colors=False))
        logger.addHandler(file_handler)

    logger.propagate = False
    return ContextLogger(logger)
