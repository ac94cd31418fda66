"""
Structured JSON Logging Configuration for tagcrawl

- Machine-readable JSON format for log analysis platforms
- Contextual information for effective debugging
- Standard log levels with detailed messages
"""

import logging
import json
import sys
import os
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from pathlib import Path


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs structured JSON logs

    Fields passed through ``extra`` with a ``ctx_`` prefix are lifted into
    the top level of the entry without the prefix.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""

        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'thread': record.threadName
        }

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': self.formatException(record.exc_info)
            }

        for key, value in record.__dict__.items():
            if key.startswith('ctx_'):
                log_entry[key[4:]] = value

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ContextAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds contextual information to log records

    Allows adding run-specific context like space ids or entry ids.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get('extra', {})

        for key, value in self.extra.items():
            extra[f'ctx_{key}'] = value

        kwargs['extra'] = extra
        return msg, kwargs


def setup_logging(
    log_level: str = 'INFO',
    log_file: Optional[str] = None,
    enable_console: bool = True,
    enable_json: bool = True
) -> None:
    """
    Setup structured logging configuration

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (None = no file logging)
        enable_console: Whether to enable console logging
        enable_json: Whether to use JSON formatting
    """

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    if enable_json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    # Console goes to stderr so CLI output on stdout stays readable
    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    configure_application_loggers()


def configure_application_loggers():
    """Quiet the HTTP stack; application loggers inherit the root level"""

    external_loggers = {
        'requests': logging.WARNING,
        'urllib3': logging.WARNING,
    }

    for logger_name, level in external_loggers.items():
        logging.getLogger(logger_name).setLevel(level)


def get_contextual_logger(name: str, **context) -> ContextAdapter:
    """
    Get a logger with contextual information

    Example:
        logger = get_contextual_logger('crawl.apply', space_id='abc123')
        logger.info("Applying tags", extra={'ctx_selected': 12})
    """
    return ContextAdapter(logging.getLogger(name), context)


def log_api_request(
    logger: logging.Logger,
    method: str,
    url: str,
    status_code: int,
    response_time: float,
    record_count: Optional[int] = None,
    error: Optional[str] = None
) -> None:
    """
    Log API request with standardized fields for analysis

    Args:
        logger: Logger instance
        method: HTTP method
        url: Request URL
        status_code: HTTP status code (0 when no response was received)
        response_time: Response time in seconds
        record_count: Number of items in a collection response
        error: Error message if request failed
    """

    log_data = {
        'extra': {
            'ctx_api_method': method,
            'ctx_api_url': url,
            'ctx_api_status': status_code,
            'ctx_api_response_time': response_time,
            'ctx_api_success': 200 <= status_code < 300
        }
    }

    if record_count is not None:
        log_data['extra']['ctx_api_record_count'] = record_count

    if error:
        log_data['extra']['ctx_api_error'] = error

    if 200 <= status_code < 300:
        message = f"API request successful: {method} {url}"
        if record_count:
            message += f" (retrieved {record_count} items)"
        logger.debug(message, **log_data)
    else:
        message = f"API request failed: {method} {url} [{status_code}]"
        if error:
            message += f" - {error}"
        logger.warning(message, **log_data)


def log_traversal_progress(
    logger: logging.Logger,
    depth: int,
    wave_size: int,
    visited: int,
    unreachable: int,
    queue_size: int
) -> None:
    """
    Log crawl progress after a wave with standardized metrics

    Args:
        logger: Logger instance
        depth: Smallest depth contained in the wave
        wave_size: Entries dispatched in the wave
        visited: Entries visited so far
        unreachable: Entries that could not be fetched so far
        queue_size: Entries queued for the next wave
    """

    log_data = {
        'extra': {
            'ctx_traversal_depth': depth,
            'ctx_traversal_wave_size': wave_size,
            'ctx_traversal_visited': visited,
            'ctx_traversal_unreachable': unreachable,
            'ctx_traversal_queue_size': queue_size
        }
    }

    message = (f"Traversal progress: depth {depth}, {wave_size:,} in wave, "
               f"{visited:,} visited, {unreachable:,} unreachable, {queue_size:,} queued")
    logger.info(message, **log_data)


def log_apply_progress(
    logger: logging.Logger,
    collection: str,
    selected: int,
    updated: int,
    republished: int,
    failed: int
) -> None:
    """Log the outcome of tagging one collection (entries or assets)"""

    log_data = {
        'extra': {
            'ctx_apply_collection': collection,
            'ctx_apply_selected': selected,
            'ctx_apply_updated': updated,
            'ctx_apply_republished': republished,
            'ctx_apply_failed': failed
        }
    }

    message = (f"Applied tags to {collection}: {updated:,}/{selected:,} updated, "
               f"{republished:,} republished, {failed:,} failed")
    if failed:
        logger.warning(message, **log_data)
    else:
        logger.info(message, **log_data)


def init_from_environment():
    """Initialize logging configuration from environment variables"""

    log_level = os.getenv('LOG_LEVEL', 'INFO')
    log_file = os.getenv('LOG_FILE', './logs/tagcrawl.log')
    enable_json = os.getenv('LOG_FORMAT', 'json').lower() == 'json'

    setup_logging(
        log_level=log_level,
        log_file=log_file or None,
        enable_console=True,
        enable_json=enable_json
    )
