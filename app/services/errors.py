"""
Errors raised by the meeting request services.

Each error carries a machine-readable kind and the HTTP status it maps to.
Services raise these before mutating anything, so a raised error means
nothing was written.
"""


class MeetingRequestError(Exception):
    """Base class for all service-level failures."""
    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(MeetingRequestError):
    """Missing or malformed input (required fields, blank cancel reason, bad upload)."""
    kind = "validation_error"
    status_code = 400


class NotFoundError(MeetingRequestError):
    """Unknown request or attachment id."""
    kind = "not_found"
    status_code = 404


class InvalidTransitionError(MeetingRequestError):
    """The requested status change is not allowed from the current status."""
    kind = "invalid_transition"
    status_code = 400

    def __init__(self, message: str, current_status=None, target_status=None):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(message)


class InvalidOperationError(MeetingRequestError):
    """The operation is not allowed in the request's current state (e.g. deleting a non-draft)."""
    kind = "invalid_operation"
    status_code = 400


class StorageError(MeetingRequestError):
    """File I/O failure in the attachment store."""
    kind = "storage_error"
    status_code = 500
