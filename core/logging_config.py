"""
Structured Logging Configuration

Provides:
- JSON structured logging for production
- Colorized console output for development
- Request logging middleware for the Flask API
- Timing decorator for search and discovery calls
- Audit logger for owner-scoped operations

Usage:
    from core.logging_config import setup_logging, get_logger

    setup_logging(level='INFO', json_format=True)

    logger = get_logger(__name__)
    logger.info('Search finished', extra={'owner_id': owner_id})
"""

import json
import logging
import os
import sys
import time
import traceback
import uuid
from datetime import datetime, timezone
from functools import wraps

from flask import g, has_request_context, request

# LogRecord attributes that are not user-supplied extras
_RESERVED_ATTRS = frozenset((
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'stack_info', 'exc_info', 'exc_text',
    'thread', 'threadName', 'message', 'taskName',
))


# =============================================================================
# Formatters
# =============================================================================

class JSONFormatter(logging.Formatter):
    """JSON structured log formatter for production."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith('_'):
                continue
            log_entry[key] = value

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Colorized console formatter for development."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname, '')
        reset = self.RESET

        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')

        parts = [
            f'{color}[{timestamp}]{reset}',
            f'{color}{record.levelname:8}{reset}',
            f'{record.name}:',
            record.getMessage()
        ]

        if hasattr(record, 'request_id'):
            parts.insert(2, f'[{str(record.request_id)[:8]}]')

        if hasattr(record, 'owner_id'):
            parts.append(f'owner={record.owner_id}')

        if hasattr(record, 'duration_ms'):
            parts.append(f'({record.duration_ms}ms)')

        message = ' '.join(parts)

        if record.exc_info:
            message += '\n' + ''.join(traceback.format_exception(*record.exc_info))

        return message


# =============================================================================
# Logger Setup
# =============================================================================

def setup_logging(level='INFO', json_format=None, app=None):
    """
    Configure the root logger (and the Flask app logger when given).

    Args:
        level: Logging level name
        json_format: Use JSON output. None means JSON when FLASK_ENV is
                     production.
        app: Optional Flask app whose logger should share the handler
    """
    if json_format is None:
        json_format = os.getenv('FLASK_ENV', 'production') == 'production'

    log_level = getattr(logging, str(level).upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(JSONFormatter() if json_format else ColoredFormatter())
    root_logger.addHandler(console_handler)

    if app is not None:
        app.logger.handlers = []
        app.logger.propagate = True
        app.logger.setLevel(log_level)

    root_logger.debug('Logging configured', extra={
        'format': 'json' if json_format else 'colored',
        'level': logging.getLevelName(log_level)
    })

    return root_logger


def get_logger(name):
    """Get a logger with the given name."""
    return logging.getLogger(name)


def _current_request_id():
    if has_request_context():
        return getattr(g, 'request_id', None)
    return None


# =============================================================================
# Request Logging Middleware
# =============================================================================

def setup_request_logging(app):
    """
    Log each request start and completion with a request ID.

    The ID is taken from X-Request-ID when the caller sends one and is
    echoed back on the response.
    """
    logger = get_logger('library.requests')

    @app.before_request
    def before_request():
        g.request_id = request.headers.get('X-Request-ID', str(uuid.uuid4()))
        g.start_time = time.time()

        logger.info(
            f'{request.method} {request.path}',
            extra={
                'request_id': g.request_id,
                'method': request.method,
                'path': request.path,
                'remote_addr': request.remote_addr,
            }
        )

    @app.after_request
    def after_request(response):
        start_time = getattr(g, 'start_time', None)
        duration_ms = int((time.time() - start_time) * 1000) if start_time else None

        if response.status_code >= 500:
            log_method = logger.error
        elif response.status_code >= 400:
            log_method = logger.warning
        else:
            log_method = logger.info

        request_id = getattr(g, 'request_id', None)
        log_method(
            f'{request.method} {request.path} -> {response.status_code}',
            extra={
                'request_id': request_id,
                'method': request.method,
                'path': request.path,
                'status_code': response.status_code,
                'duration_ms': duration_ms,
            }
        )

        if request_id:
            response.headers['X-Request-ID'] = request_id

        return response


# =============================================================================
# Performance Logging Decorator
# =============================================================================

def log_performance(logger_name=None):
    """
    Log how long the wrapped call took, and failures with their type.

    Usage:
        @log_performance('library.search')
        def search(self, request):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(logger_name or func.__module__)
            start_time = time.time()

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f'{func.__name__} failed: {e}',
                    extra={
                        'function': func.__name__,
                        'duration_ms': int((time.time() - start_time) * 1000),
                        'error_type': type(e).__name__,
                        'request_id': _current_request_id()
                    }
                )
                raise

            logger.debug(
                f'{func.__name__} completed',
                extra={
                    'function': func.__name__,
                    'duration_ms': int((time.time() - start_time) * 1000),
                    'request_id': _current_request_id()
                }
            )
            return result

        return wrapper
    return decorator


# =============================================================================
# Audit Logging
# =============================================================================

class AuditLogger:
    """
    Audit logger for owner-scoped operations.

    Usage:
        audit = AuditLogger()
        audit.log_search(owner_id='u1', query='graph theory', results_count=12)
    """

    def __init__(self):
        self.logger = get_logger('library.audit')

    def log_search(self, owner_id, query, results_count, sort_key=None, paginated=False):
        """Log a search request."""
        self.logger.info(
            'Search performed',
            extra={
                'audit_type': 'search',
                'owner_id': owner_id,
                'query': query[:100] if query else None,
                'results_count': results_count,
                'sort_key': sort_key,
                'paginated': paginated,
            }
        )

    def log_discovery(self, owner_id, document_id, created_count, failed_count):
        """Log a relationship discovery run."""
        self.logger.info(
            'Relationship discovery completed',
            extra={
                'audit_type': 'relationship_discovery',
                'owner_id': owner_id,
                'document_id': document_id,
                'edges_created': created_count,
                'candidates_failed': failed_count,
            }
        )

    def log_smart_collection(self, owner_id, collection_id, results_count):
        """Log a smart collection evaluation."""
        self.logger.info(
            'Smart collection evaluated',
            extra={
                'audit_type': 'smart_collection',
                'owner_id': owner_id,
                'collection_id': collection_id,
                'results_count': results_count,
            }
        )
