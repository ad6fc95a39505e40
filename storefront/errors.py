"""Error taxonomy raised by the crud layer.

Each error knows the HTTP status it maps to; ``main`` registers one handler
that renders any of them as ``{"success": false, "message": ..., "error": ...}``.
"""


class StoreError(Exception):
    status_code = 500
    code = "InternalError"
    default_message = "Internal Server Error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(StoreError):
    status_code = 404
    code = "NotFound"
    default_message = "not found"


class ValidationError(StoreError):
    status_code = 400
    code = "ValidationError"
    default_message = "invalid input"


class InputError(ValidationError):
    code = "InputError"
    default_message = "invalid upload"


class CreationError(StoreError):
    status_code = 400
    code = "CreationError"
    default_message = "the resource cannot be created"


class PersistError(StoreError):
    code = "PersistError"
    default_message = "the change cannot be saved"


class AggregationError(StoreError):
    status_code = 400
    code = "AggregationError"
    default_message = "the aggregate cannot be generated"


class AuthError(StoreError):
    status_code = 401
    code = "AuthError"
    default_message = "not authorized"


class Forbidden(AuthError):
    status_code = 403
    code = "Forbidden"
    default_message = "forbidden"


class InternalError(StoreError):
    pass
