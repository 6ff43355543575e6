"""
Structured logging configuration for the file property engine.

Configures Python standard library logging and structlog so that every module
logging through ``structlog.get_logger(__name__)`` emits either JSON records
(python-json-logger, for log aggregation) or human-readable console lines.

The engine itself never configures logging on import; host applications call
configure_logging() once at startup, with any object exposing ``LOG_LEVEL``
and ``LOG_FORMAT`` (typically a fileproperty.config.settings configuration).

Usage:
    from fileproperty.config.settings import get_config
    from fileproperty.monitoring.logging import configure_logging, log_context

    configure_logging(get_config('production'))

    with log_context(property='attachments', request_id=request_id):
        service.save(value, uploaded_files)
"""

import logging
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from pythonjsonlogger import jsonlogger
from structlog.types import EventDict, WrappedLogger


class LoggingConfigurationError(Exception):
    """Raised when the logging configuration object is incomplete or invalid."""
    pass


class FilePropertyJSONFormatter(jsonlogger.JsonFormatter):
    """JSON log formatter adding service identification fields."""

    def __init__(self, *args, **kwargs):
        format_string = ' '.join([
            '%(asctime)s',
            '%(name)s',
            '%(levelname)s',
            '%(message)s',
            '%(funcName)s',
            '%(lineno)d',
        ])
        super().__init__(format_string, *args, **kwargs)

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record['service'] = 'file-property-storage'
        log_record['environment'] = os.getenv('FILEPROPERTY_ENV', 'production')
        log_record['process_id'] = os.getpid()

        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.now(timezone.utc).isoformat()


def add_service_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Tag every structlog event with the emitting component.

    Args:
        logger: Wrapped logger instance
        method_name: Logging method name
        event_dict: Event dictionary to enhance

    Returns:
        Enhanced event dictionary
    """
    event_dict.setdefault('component', 'fileproperty')
    return event_dict


class LoggingConfiguration:
    """
    Logging configuration manager.

    Validates the configuration object, installs stdlib handlers with the
    configured formatter and wires structlog on top of stdlib logging.
    """

    REQUIRED_ATTRIBUTES = ('LOG_LEVEL', 'LOG_FORMAT')

    def __init__(self, config: Optional[Any] = None):
        """
        Initialize the logging configuration.

        Args:
            config: Configuration object, or None to load the environment's
                default configuration
        """
        if config is None:
            from ..config.settings import get_config
            config = get_config()

        self.config = config
        self.is_configured = False
        self._validate_configuration()

    def _validate_configuration(self) -> None:
        """
        Validate logging configuration requirements.

        Raises:
            LoggingConfigurationError: When configuration is invalid
        """
        missing_attrs = [attr for attr in self.REQUIRED_ATTRIBUTES if not hasattr(self.config, attr)]
        if missing_attrs:
            raise LoggingConfigurationError(
                f"Missing required logging configuration: {', '.join(missing_attrs)}"
            )

        level = str(self.config.LOG_LEVEL).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise LoggingConfigurationError(f"Unknown log level: {self.config.LOG_LEVEL}")

    @property
    def use_json(self) -> bool:
        return str(self.config.LOG_FORMAT).lower() == 'json'

    def configure_structured_logging(self) -> None:
        """Configure stdlib logging and the structlog processor pipeline."""
        self._configure_stdlib_logging()

        processors = [
            structlog.contextvars.merge_contextvars,
            add_service_context,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        if self.use_json:
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer())

        structlog.configure(
            processors=processors,
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self.is_configured = True

    def _configure_stdlib_logging(self) -> None:
        logging.basicConfig(
            level=getattr(logging, str(self.config.LOG_LEVEL).upper()),
            handlers=self._create_log_handlers(),
            force=True
        )

    def _create_log_handlers(self) -> List[logging.Handler]:
        handlers: List[logging.Handler] = []

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(self._create_formatter())
        handlers.append(console_handler)

        log_file = getattr(self.config, 'LOG_FILE', None)
        if log_file:
            os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(self._create_formatter())
            handlers.append(file_handler)

        return handlers

    def _create_formatter(self) -> logging.Formatter:
        if self.use_json:
            return FilePropertyJSONFormatter()
        return logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


@contextmanager
def log_context(**context_data):
    """
    Context manager binding ``context_data`` to every log entry emitted inside it.

    Previously bound values are restored on exit.

    Args:
        **context_data: Context data to add to log entries
    """
    tokens = structlog.contextvars.bind_contextvars(**context_data)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


_logging_config: Optional[LoggingConfiguration] = None


def configure_logging(app_config: Optional[Any] = None, force: bool = False) -> LoggingConfiguration:
    """
    Configure logging for the engine and its host application.

    Args:
        app_config: Configuration object exposing LOG_LEVEL and LOG_FORMAT
        force: Reconfigure even if logging was configured before

    Returns:
        The active LoggingConfiguration
    """
    global _logging_config

    if _logging_config is None or force:
        _logging_config = LoggingConfiguration(app_config)
        _logging_config.configure_structured_logging()

    return _logging_config


def get_logger(name: str):
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name

    Returns:
        Configured structlog logger
    """
    if _logging_config is None:
        configure_logging()

    return structlog.get_logger(name)


__all__ = [
    'LoggingConfiguration',
    'LoggingConfigurationError',
    'FilePropertyJSONFormatter',
    'add_service_context',
    'configure_logging',
    'get_logger',
    'log_context',
]
