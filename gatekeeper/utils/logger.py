import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Dict, Any
import json
from datetime import datetime, timezone
import colorlog

from gatekeeper.utils.constants import LOG_DIR

class CustomFormatter(colorlog.ColoredFormatter):
    """Console formatter with color support"""

    def __init__(self):
        super().__init__(
            fmt='%(log_color)s%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
            reset=True,
            log_colors={
                'DEBUG':    'cyan',
                'INFO':     'green',
                'WARNING': 'yellow',
                'ERROR':    'red',
                'CRITICAL': 'red,bg_white',
            },
            secondary_log_colors={},
            style='%'
        )

    def formatException(self, ei) -> str:
        result = super().formatException(ei)
        return f"\n{result}"

class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    # Attributes every LogRecord has; anything else came in through `extra`
    _RESERVED = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}

    def format(self, record: logging.LogRecord) -> str:
        """Format the record as JSON"""
        log_data = {
            'timestamp': self.formatTime(record, self.datefmt),
            'name': record.name,
            'level': record.levelname,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        extra = {
            key: value for key, value in vars(record).items()
            if key not in self._RESERVED
        }
        if extra:
            log_data['extra'] = extra

        return json.dumps(log_data, default=str)

def create_rotating_file_handler(filename: str,
                               max_bytes: int = 10485760,  # 10MB
                               backup_count: int = 5,
                               formatter: logging.Formatter = None) -> logging.Handler:
    """Create a rotating file handler with the specified configuration"""
    handler = logging.handlers.RotatingFileHandler(
        filename=filename,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )

    if formatter:
        handler.setFormatter(formatter)

    return handler

def setup_logging(level: Optional[str] = None,
                 json_logging: bool = False,
                 log_dir: Optional[Path] = None) -> None:
    """
    Set up logging configuration for the application

    Args:
        level: Optional override for log level
        json_logging: Whether to use JSON formatting for file logs
        log_dir: Optional override for log directory
    """
    log_directory = log_dir or LOG_DIR
    log_directory.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level or logging.INFO)
    root_logger.handlers.clear()

    # Console handler with color formatting
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(CustomFormatter())
    console_handler.setLevel(level or logging.INFO)
    root_logger.addHandler(console_handler)

    # Main log file handler
    main_formatter = JSONFormatter() if json_logging else logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s'
    )

    main_handler = create_rotating_file_handler(
        filename=log_directory / 'gatekeeper.log',
        formatter=main_formatter
    )
    main_handler.setLevel(logging.DEBUG)
    root_logger.addHandler(main_handler)

    # Error log file handler
    error_handler = create_rotating_file_handler(
        filename=log_directory / 'error.log',
        formatter=main_formatter
    )
    error_handler.setLevel(logging.ERROR)
    root_logger.addHandler(error_handler)

    # discord.py is chatty at INFO
    logging.getLogger('discord').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    logger = logging.getLogger('Gatekeeper')
    logger.setLevel(level or logging.INFO)

    def handle_exception(exc_type, exc_value, exc_traceback):
        """Handle uncaught exceptions"""
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return

        logger.critical(
            "Uncaught exception",
            exc_info=(exc_type, exc_value, exc_traceback),
            extra={
                'time': datetime.now(timezone.utc).isoformat(),
                'type': exc_type.__name__
            }
        )

    sys.excepthook = handle_exception

    logger.info(
        "Logging system initialized",
        extra={
            'log_dir': str(log_directory),
            'level': logging.getLevelName(logger.getEffectiveLevel()),
            'json_logging': json_logging
        }
    )

class LoggerAdapter(logging.LoggerAdapter):
    """Custom logger adapter for adding context to log messages"""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple[str, Dict[str, Any]]:
        """Add extra context to the log record"""
        extra = dict(kwargs.get('extra') or {})
        extra.update(self.extra)
        kwargs['extra'] = extra
        return msg, kwargs

def get_logger(name: str, **kwargs) -> logging.Logger:
    """
    Get a logger with the given name and optional context

    Args:
        name: Logger name
        **kwargs: Additional context to add to all log messages

    Returns:
        Logger instance with context
    """
    logger = logging.getLogger(f'Gatekeeper.{name}')

    if kwargs:
        return LoggerAdapter(logger, kwargs)

    return logger
