from flask import jsonify
from werkzeug.exceptions import RequestEntityTooLarge


class LostFoundError(Exception):
    status_code = 400
    message = 'Request failed'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(LostFoundError):
    status_code = 400
    message = 'Required fields missing'


class AuthenticationError(LostFoundError):
    status_code = 401
    message = 'Invalid email or password (use your date of birth: YYYY-MM-DD)'


class AuthorizationError(LostFoundError):
    status_code = 403
    message = 'Unauthorized'


class NotFoundError(LostFoundError):
    status_code = 404
    message = 'Item not found'


class StoreError(LostFoundError):
    status_code = 500
    message = 'Storage failure'


class NotificationError(LostFoundError):
    """Raised inside the notifier only; callers never see it."""
    status_code = 500
    retryable = True
    message = 'Notification failed'


def error_response(message, status_code):
    return jsonify({'success': False, 'message': message}), status_code


def register_error_handlers(app):
    @app.errorhandler(LostFoundError)
    def _lost_found_error(exc):
        return error_response(exc.message, exc.status_code)

    @app.errorhandler(RequestEntityTooLarge)
    def _too_large(exc):
        limit_mb = (app.config.get('MAX_CONTENT_LENGTH') or 0) // (1024 * 1024)
        return error_response(f'Image exceeds the {limit_mb} MB limit', 413)
