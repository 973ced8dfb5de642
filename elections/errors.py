# elections/errors.py

import logging

from werkzeug.exceptions import HTTPException

from elections.responses import error_response

logger = logging.getLogger(__name__)


class ElectionsError(Exception):
    """Base for every domain error; carries the HTTP status it maps to."""

    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ElectionsError):
    status_code = 400


class AuthError(ElectionsError):
    status_code = 401


class EligibilityError(ElectionsError):
    status_code = 403


class NotFoundError(ElectionsError):
    status_code = 404


class StateConflictError(ElectionsError):
    status_code = 409


class DuplicateError(ElectionsError):
    status_code = 409


class UnexpectedError(ElectionsError):
    status_code = 500


def register_error_handlers(app, jwt):
    """Translate domain errors and framework errors into the JSON envelope."""

    @app.errorhandler(ElectionsError)
    def handle_domain_error(err):
        return error_response(err.status_code, err.message)

    @app.errorhandler(HTTPException)
    def handle_http_exception(err):
        return error_response(err.code, err.description or err.name)

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        logger.exception("Unhandled error: %s", err)
        return error_response(500, 'Internal server error')

    @jwt.unauthorized_loader
    def missing_token_callback(reason):
        return error_response(401, 'Token not found')

    @jwt.invalid_token_loader
    def invalid_token_callback(reason):
        return error_response(401, 'Invalid token')

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return error_response(401, 'Token has expired')

    @jwt.user_lookup_error_loader
    def user_lookup_error_callback(jwt_header, jwt_payload):
        return error_response(401, 'User not found')
