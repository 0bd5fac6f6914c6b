# errors.py
# Error taxonomy shared by the services and the HTTP layer.

from typing import Optional


class ProcurementError(Exception):
    """Base class for every error the core raises on purpose."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ProcurementError):
    status_code = 404


class ValidationError(ProcurementError):
    status_code = 400


class DuplicateError(ProcurementError):
    status_code = 409


class ExtractionFailure(ProcurementError):
    """Generated output could not be read as the expected shape."""

    status_code = 422

    def __init__(self, message: str, raw_text: Optional[str] = None):
        super().__init__(message)
        self.raw_text = raw_text


class DispatchFailure(ProcurementError):
    status_code = 502

    def __init__(self, message: str, vendor: Optional[str] = None):
        super().__init__(message)
        self.vendor = vendor


class GenerationError(ProcurementError):
    """The text-generation backend could not be reached or refused the call."""

    status_code = 502


class MailboxError(ProcurementError):
    """The mail provider could not return a received email."""

    status_code = 502


class StorageError(ProcurementError):
    status_code = 500
