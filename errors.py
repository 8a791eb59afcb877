"""
Domain errors for Feed the Future.

Every error carries a human-readable message so the client can explain why
an operation was rejected. main.py maps each kind to an HTTP status code.
"""


class FeedError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FeedError):
    kind = "validation_error"
    status_code = 422


class NotFound(FeedError):
    kind = "not_found"
    status_code = 404


class InvalidTransition(FeedError):
    kind = "invalid_transition"
    status_code = 409


class Forbidden(FeedError):
    kind = "forbidden"
    status_code = 403


class Unavailable(FeedError):
    kind = "unavailable"
    status_code = 503
