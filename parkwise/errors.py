"""Error taxonomy shared by the services and rendered as JSON by the app."""
from flask import jsonify
from werkzeug.exceptions import HTTPException


class ParkWiseError(Exception):
    status_code = 400
    code = 'error'

    def __init__(self, message=None, **context):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.context = context

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class ValidationError(ParkWiseError):
    status_code = 400
    code = 'validation_error'


class NotFoundError(ParkWiseError):
    status_code = 404
    code = 'not_found'


class ConflictError(ParkWiseError):
    status_code = 409
    code = 'conflict'


class StateTransitionError(ConflictError):
    code = 'invalid_transition'


class AlreadyUsed(ConflictError):
    code = 'already_used'


class AccessDenied(ConflictError):
    status_code = 403
    code = 'access_denied'


class PersistenceError(ParkWiseError):
    status_code = 500
    code = 'persistence_error'
    public_message = 'Could not save your changes. Please try again.'

    def to_dict(self):
        return {'error': self.public_message, 'code': self.code}


class PartialFailure(PersistenceError):
    code = 'partial_failure'
    public_message = 'The operation only partly completed.'

    def __init__(self, message=None, committed=None, failed=None, **context):
        super().__init__(message, **context)
        self.committed = list(committed or [])
        self.failed = list(failed or [])

    def to_dict(self):
        data = super().to_dict()
        data['committed'] = self.committed
        data['failed'] = self.failed
        return data


def register_error_handlers(app):
    @app.errorhandler(ParkWiseError)
    def handle_parkwise_error(error):
        if error.status_code >= 500:
            app.logger.error('%s: %s %s', error.code, error.message, error.context, exc_info=error)
        else:
            app.logger.warning('%s: %s', error.code, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'error': error.description, 'code': error.name.lower().replace(' ', '_')}), error.code
