"""Error taxonomy shared by the interview client and the API servers."""


class InterviewError(Exception):
    status_code = 500
    default_message = "Interview error"

    def __init__(self, message=None, status_code=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(InterviewError):
    """A required field is missing or malformed. The user must fix the input."""
    status_code = 400
    default_message = "Missing required fields"


class CapturePermissionError(InterviewError):
    """Camera or microphone access was denied or the device is unavailable."""
    status_code = 403
    default_message = "Failed to access camera/microphone"


class NotFoundError(InterviewError):
    status_code = 404
    default_message = "Not found"


class UploadError(InterviewError):
    """A take failed to upload.

    ``position`` is the 1-based index of the failed item, ``completed`` the
    number of items the server acknowledged before it.
    """
    status_code = 502
    default_message = "Upload failed"

    def __init__(self, message=None, position=None, completed=0, cause=None):
        super().__init__(message)
        self.position = position
        self.completed = completed
        self.cause = cause


class InternalError(InterviewError):
    status_code = 500
    default_message = "Internal server error"


class IllegalTransition(InterviewError):
    status_code = 409
    default_message = "Illegal interview state transition"


STATUS_ERRORS = {
    400: ValidationError,
    404: NotFoundError,
}


def error_for_status(status_code, message):
    """Map an API status code back to the matching exception."""
    cls = STATUS_ERRORS.get(status_code, InternalError)
    return cls(message, status_code=status_code)
