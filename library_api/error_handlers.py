"""
Library API Error Handling

Renders the library error taxonomy (core/errors.py) as JSON responses:

- ValidationError  -> 400, fix the request
- NotFoundError    -> 404
- StoreError       -> 503, retryable
- anything else    -> 500

Usage:
    from library_api.error_handlers import setup_error_handlers

    setup_error_handlers(app)
"""

import logging
import traceback

from flask import current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from core.errors import LibraryError, StoreError

logger = logging.getLogger('library.errors')


def setup_error_handlers(app):
    """Register error handlers with Flask app."""

    @app.errorhandler(LibraryError)
    def handle_library_error(error):
        """Handle errors from the library taxonomy."""
        log = logger.error if isinstance(error, StoreError) else logger.warning
        log(
            f'{error.error_type}: {error.message}',
            extra={
                'error_type': error.error_type,
                'details': error.details,
                'path': request.path
            }
        )

        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        if error.retryable:
            response.headers['Retry-After'] = '1'
        return response

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        """Handle werkzeug HTTP errors (404 routes, 405, oversized bodies)."""
        return jsonify({
            'error': error.name.lower().replace(' ', '_'),
            'message': error.description,
            'retryable': False,
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """Handle any unexpected errors."""
        logger.exception(
            f'Unexpected error: {type(error).__name__}: {str(error)}',
            extra={
                'error_type': type(error).__name__,
                'path': request.path
            }
        )

        # Don't expose error details in production
        if current_app.debug:
            return jsonify({
                'error': 'unexpected_error',
                'message': str(error),
                'type': type(error).__name__,
                'traceback': traceback.format_exc()
            }), 500

        return jsonify({
            'error': 'unexpected_error',
            'message': 'An unexpected error occurred'
        }), 500
