"""
Engine error taxonomy.

Every rejection the engine makes is one of these. Routes never see raw
database errors for a business rule; the app maps EngineError to an HTTP
response using ``status_code`` and ``kind``.
"""


class EngineError(Exception):
    status_code = 400
    kind = "engine_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(EngineError):
    """Unknown tournament, match or player id."""

    status_code = 404
    kind = "not_found"


class InvalidStateError(EngineError):
    """Operation not allowed in the current lifecycle phase."""

    status_code = 400
    kind = "invalid_state"


class UnsupportedFormatError(InvalidStateError):
    kind = "unsupported_format"


class ValidationFailure(EngineError):
    """Malformed or inconsistent input data."""

    status_code = 422
    kind = "validation_failure"


class ConflictError(EngineError):
    """Declared winner does not match the submitted scores."""

    status_code = 409
    kind = "conflict"
