"""
Centralized logging manager for the application.

Every logger obtained through get_logger() writes to the console (stdout) and
to a per-worker log file under LOG_DIR, so multi-worker uvicorn deployments
keep one file per process. An optional prefix is prepended to every message,
which lets each module tag its output (e.g. "[FamilyManager]") while sharing
the same underlying logger and handlers.

Usage:
- Use get_logger() to obtain a logger instance.
"""

from datetime import datetime, timezone
import json
import logging
import os
import sys

from family_budget.config import settings

LOG_LEVEL: str = os.getenv("LOG_LEVEL", settings.LOG_LEVEL).upper()
LOG_DIR: str = os.getenv("LOG_DIR", settings.LOG_DIR)
DEFAULT_LOGGER_NAME: str = "Family_Budget"


def _ensure_console_handler(logger: logging.Logger, formatter: logging.Formatter) -> bool:
    """
    Ensure logger has a StreamHandler for console output.

    Args:
        logger: The logger instance to check and modify
        formatter: The formatter to apply to the StreamHandler

    Returns:
        bool: True if a new StreamHandler was added, False if one already existed
    """
    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and handler.stream is sys.stdout:
            return False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logger.level)
    logger.addHandler(console_handler)
    return True


def get_worker_log_filename() -> str:
    return os.path.join(LOG_DIR, f"worker_{os.getpid()}.log")


def get_worker_registry_filename() -> str:
    return os.path.join(LOG_DIR, "worker_registry.json")


def _register_worker(logger: logging.Logger, log_filename: str) -> None:
    """Record this process and its log file in the shared worker registry."""
    reg_file = get_worker_registry_filename()
    worker_info = {
        "pid": os.getpid(),
        "log_file": log_filename,
        "start_time": datetime.now(timezone.utc).isoformat(),
        "hostname": os.getenv("HOSTNAME", os.uname().nodename),
    }
    try:
        if os.path.exists(reg_file):
            with open(reg_file, "r", encoding="utf-8") as f:
                reg = json.load(f)
        else:
            reg = {}
        reg[str(os.getpid())] = worker_info
        with open(reg_file, "w", encoding="utf-8") as f:
            json.dump(reg, f, indent=2)
    except (OSError, ValueError) as e:
        logger.warning("[LoggingManager] Could not update worker registry: %s", e)


class PrefixFilter(logging.Filter):
    """Prepend a fixed prefix to every record passing through a logger."""

    def __init__(self, prefix: str):
        super().__init__()
        self.prefix = prefix

    def filter(self, record: logging.LogRecord) -> bool:
        if self.prefix and not getattr(record, "_prefix_applied", False):
            record.msg = f"{self.prefix} {record.msg}"
            record._prefix_applied = True
        return True


def get_logger(name: str = DEFAULT_LOGGER_NAME, prefix: str = "") -> logging.Logger:
    """
    Return a configured logger.

    Args:
        name: Logger name. Loggers are shared per name.
        prefix: Optional message prefix. Prefixed loggers get a child logger
            named after the prefix so different modules keep distinct prefixes.

    Returns:
        logging.Logger: Logger with console and per-worker file handlers.
    """
    base_logger = logging.getLogger(name)
    base_logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    formatter = logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")

    console_added = _ensure_console_handler(base_logger, formatter)
    if console_added:
        base_logger.debug("[LoggingManager] Console StreamHandler attached to logger '%s'", name)

    log_filename = get_worker_log_filename()
    try:
        os.makedirs(os.path.dirname(log_filename), exist_ok=True)
        if not any(
            isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == os.path.abspath(log_filename)
            for h in base_logger.handlers
        ):
            file_handler = logging.FileHandler(log_filename)
            file_handler.setFormatter(formatter)
            base_logger.addHandler(file_handler)
            _register_worker(base_logger, log_filename)
    except OSError as e:
        base_logger.warning("[LoggingManager] Could not attach file handler '%s': %s", log_filename, e)

    if not prefix:
        return base_logger

    # Child loggers propagate to the base handlers; the filter only tags their records
    child_name = prefix.strip("[]").replace(" ", "_") or "prefixed"
    logger = base_logger.getChild(child_name)
    if not any(isinstance(f, PrefixFilter) for f in logger.filters):
        logger.addFilter(PrefixFilter(prefix))
    return logger
