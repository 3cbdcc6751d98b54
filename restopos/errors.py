"""Error taxonomy for the POS core.

Guard violations raised by the state machines are ``PosError`` subclasses and
carry the HTTP status and code the API reports. ``RepositoryError`` marks an
I/O failure against the store; those never reach the operator as a blocking
error.
"""


class PosError(Exception):
    status_code = 400
    code = "pos_error"

    def __init__(self, message=None):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self):
        return {"error": self.code, "message": self.message}


class ValidationError(PosError):
    status_code = 400
    code = "validation_error"


class NotFoundError(PosError):
    status_code = 404
    code = "not_found"


class InvalidTransitionError(PosError):
    status_code = 409
    code = "invalid_transition"


class AlreadyClosedError(PosError):
    status_code = 409
    code = "already_closed"


class NotReadyError(PosError):
    status_code = 409
    code = "not_ready"


class InvalidStateError(PosError):
    status_code = 409
    code = "invalid_state"


class RegisterClosedError(PosError):
    status_code = 409
    code = "register_closed"


class RepositoryError(Exception):
    """The store could not be reached or rejected a write."""


class StaleRecordError(RepositoryError):
    """The store already moved the record past the state this write expects."""
