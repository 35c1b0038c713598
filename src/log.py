"""
log.py

Logging setup and the logging observer plugged into the service layer.

Services never call a logger directly; they report the start and outcome
of each public operation to an OperationObserver.  LoggingObserver turns
those reports into log records:

  started                      → DEBUG
  succeeded (read)             → DEBUG
  succeeded (write)            → INFO
  failed (not found, invalid,
          duplicate name)      → WARNING
  failed (persistence)         → ERROR, with the storage fault's traceback
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Optional

from config import Settings
from errors import DomainError
from service import OperationObserver

# Operations that change stored state; everything else is a read.
WRITE_OPERATIONS = frozenset({
    "create",
    "update",
    "delete",
    "add_milestone",
    "set_milestone_status",
    "add_task",
    "record_task_hours",
    "assign_coworker",
})


def setup_logging(settings: Settings) -> None:
    """Configure the root logger from the application settings."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    formatter = logging.Formatter(settings.log_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.log_file:
        log_file = Path(settings.log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger(__name__).info(
        "Logging configured at %s%s",
        logging.getLevelName(level),
        f" (file: {settings.log_file})" if settings.log_file else "",
    )


def _describe(context: dict) -> str:
    return ", ".join(f"{k}={v!r}" for k, v in context.items())


class LoggingObserver(OperationObserver):
    """Reports service operations to a standard library logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger("service")

    def _name(self, component: str, operation: str) -> str:
        return f"{component}.{operation}"

    def started(self, component: str, operation: str, **context: Any) -> None:
        self._logger.debug(
            "Attempting %s (%s)", self._name(component, operation), _describe(context)
        )

    def succeeded(self, component: str, operation: str, **context: Any) -> None:
        level = logging.INFO if operation in WRITE_OPERATIONS else logging.DEBUG
        self._logger.log(
            level,
            "Successfully completed %s (%s)",
            self._name(component, operation),
            _describe(context),
        )

    def failed(
        self, component: str, operation: str, error: DomainError, **context: Any
    ) -> None:
        name = self._name(component, operation)
        if error.is_persistence_failure:
            self._logger.error(
                "%s failed (%s): %s",
                name,
                _describe(context),
                error,
                exc_info=error.__cause__ or error,
            )
        else:
            self._logger.warning("%s failed (%s): %s", name, _describe(context), error)
