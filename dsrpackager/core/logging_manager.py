from __future__ import annotations

import logging
import logging.handlers
import os
import pathlib
import sys
from typing import Any, Callable, Dict, List, Optional, Union

import structlog
from pythonjsonlogger import jsonlogger

from dsrpackager.utils.exceptions import ConfigurationError

Reporter = Callable[[str, str], None]
"""Callable receiving ``(message, level)`` for user-facing progress reports."""


class LoggingReporter:
    """Reporter that forwards messages to a logger.

    Levels are the lower-case logging method names: debug, info, warning,
    error. Unknown levels are reported as info.
    """

    def __init__(self, logger: Any) -> None:
        self._logger = logger

    def __call__(self, message: str, level: str = "info") -> None:
        log = getattr(self._logger, level.lower(), None)
        if not callable(log):
            log = self._logger.info
        log(message)


class LoggingManager:
    """Configures logging for the packager.

    The root logger gets a console handler and, when enabled, a rotating
    file handler. In ``json`` format records are rendered with
    python-json-logger and ``get_logger`` hands out structlog loggers; in
    ``text`` format a plain formatter and stdlib loggers are used.
    """

    # Mapping from string log levels to logging module constants
    LOG_LEVELS = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    def __init__(self, config_manager: Any) -> None:
        """Initialize the Logging Manager.

        Args:
            config_manager: The Configuration Manager to use for logging settings.
        """
        self.name = "logging_manager"
        self._config_manager = config_manager
        self._root_logger: Optional[logging.Logger] = None
        self._file_handler: Optional[logging.Handler] = None
        self._console_handler: Optional[logging.Handler] = None
        self._log_directory: Optional[pathlib.Path] = None
        self._enable_structlog = False
        self._handlers: List[logging.Handler] = []
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Set up logging based on the configuration.

        Raises:
            ConfigurationError: If the logging configuration cannot be applied.
        """
        try:
            logging_config = self._config_manager.get("logging", {})
            log_level_str = logging_config.get("level", "INFO").lower()
            log_level = self.LOG_LEVELS.get(log_level_str, logging.INFO)
            log_format = logging_config.get("format", "text").lower()
            file_config = logging_config.get("file", {})
            console_config = logging_config.get("console", {})

            self._root_logger = logging.getLogger()
            self._root_logger.setLevel(log_level)

            for handler in list(self._root_logger.handlers):
                self._root_logger.removeHandler(handler)

            if log_format == "json":
                self._enable_structlog = True
                formatter = self._create_json_formatter()
            else:
                formatter = logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                )

            if console_config.get("enabled", True):
                console_level_str = console_config.get("level", "INFO").lower()
                console_level = self.LOG_LEVELS.get(console_level_str, logging.INFO)
                self._console_handler = logging.StreamHandler(sys.stderr)
                self._console_handler.setLevel(console_level)
                self._console_handler.setFormatter(formatter)
                self._root_logger.addHandler(self._console_handler)
                self._handlers.append(self._console_handler)

            if file_config.get("enabled", False):
                file_path = file_config.get("path", "logs/dsrpackager.log")
                self._log_directory = pathlib.Path(file_path).parent
                os.makedirs(self._log_directory, exist_ok=True)

                self._file_handler = logging.handlers.RotatingFileHandler(
                    file_path,
                    maxBytes=self._parse_rotation(file_config.get("rotation", "10 MB")),
                    backupCount=self._parse_retention(file_config.get("retention", "5 days")),
                )
                self._file_handler.setLevel(log_level)
                self._file_handler.setFormatter(formatter)
                self._root_logger.addHandler(self._file_handler)
                self._handlers.append(self._file_handler)

            if self._enable_structlog:
                self._configure_structlog()

            self._initialized = True

        except Exception as e:
            raise ConfigurationError(
                f"Failed to initialize logging: {str(e)}",
                config_key="logging",
            ) from e

    @staticmethod
    def _parse_rotation(rotation: Any) -> int:
        """Parse a rotation size such as "10 MB" into bytes."""
        if isinstance(rotation, int):
            return rotation
        if isinstance(rotation, str) and "MB" in rotation:
            return int(rotation.split()[0]) * 1024 * 1024
        return 10 * 1024 * 1024

    @staticmethod
    def _parse_retention(retention: Any) -> int:
        """Parse a retention such as "5 days" into a backup count."""
        if isinstance(retention, int):
            return retention
        if isinstance(retention, str) and "days" in retention:
            return int(retention.split()[0])
        return 5

    def _create_json_formatter(self) -> logging.Formatter:
        """Create a JSON formatter for log records."""
        return jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
            json_ensure_ascii=False,
        )

    def _configure_structlog(self) -> None:
        """Configure structlog for structured logging."""
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def get_logger(self, name: str) -> Union[logging.Logger, Any]:
        """Get a logger for a specific component.

        Args:
            name: The name of the component requesting a logger.

        Returns:
            A structlog logger in json mode, a stdlib logger otherwise.
        """
        if self._initialized and self._enable_structlog:
            return structlog.get_logger(name)
        return logging.getLogger(name)

    def get_reporter(self, name: str = "dsrpackager") -> Reporter:
        return LoggingReporter(self.get_logger(name))

    def shutdown(self) -> None:
        """Close all log handlers."""
        if not self._initialized:
            return

        for handler in self._handlers:
            if self._root_logger:
                self._root_logger.removeHandler(handler)
            try:
                handler.flush()
                handler.close()
            except (OSError, ValueError):
                pass

        self._handlers = []
        self._initialized = False

    def status(self) -> Dict[str, Any]:
        """Get the status of the Logging Manager."""
        status: Dict[str, Any] = {
            "name": self.name,
            "initialized": self._initialized,
        }
        if self._initialized:
            status.update(
                {
                    "log_directory": str(self._log_directory) if self._log_directory else None,
                    "handlers": {
                        "console": self._console_handler in self._handlers,
                        "file": self._file_handler in self._handlers,
                    },
                    "structured_logging": self._enable_structlog,
                }
            )
        return status
