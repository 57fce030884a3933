"""Status definitions and exceptions for ChaplaincyTracker.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., ValidationException) raised by the store, sync and session layers
"""
import enum
import logging
from typing import Dict, Optional


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Settings status
    SettingsNotFound = enum.auto()
    SettingsInvalid = enum.auto()

    # Local store status
    StoreInvalid = enum.auto()

    # Remote endpoint status
    EndpointNotConfigured = enum.auto()
    ServiceUnavailable = enum.auto()
    SnapshotInvalid = enum.auto()

    # Session status
    CredentialsInvalid = enum.auto()
    NotAuthenticated = enum.auto()
    PermissionDenied = enum.auto()

    # Record status
    ValidationFailed = enum.auto()
    RecordNotFound = enum.auto()
    RequestInvalid = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.SettingsNotFound: 'Could not find the application settings.',
    Status.SettingsInvalid: 'The application settings seem to be incomplete, or contain invalid values.',

    Status.StoreInvalid: 'The local record store could not be opened. Try resetting the local cache.',

    Status.EndpointNotConfigured: 'No remote endpoint is configured. Working offline.',
    Status.ServiceUnavailable: 'The remote endpoint is unavailable. Working offline with local data.',
    Status.SnapshotInvalid: 'The remote endpoint returned data that could not be read.',

    Status.CredentialsInvalid: 'Invalid email or password.',
    Status.NotAuthenticated: 'Please sign in first.',
    Status.PermissionDenied: 'You are not allowed to change this record.',

    Status.ValidationFailed: 'The record is incomplete or contains invalid values.',
    Status.RecordNotFound: 'The record could not be found.',
    Status.RequestInvalid: 'The change request cannot be processed.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in ChaplaincyTracker.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus
    log_level = logging.ERROR

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.log(self.log_level, exception_message)

        from ..core.signals import signals
        signals.error.emit(message or self.status_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error during status processing."""
    pass


class SettingsNotFoundException(BaseStatusException):
    """Exception raised when the settings file cannot be found."""
    status = Status.SettingsNotFound


class SettingsInvalidException(BaseStatusException):
    """Exception raised when the settings file is invalid or malformed."""
    status = Status.SettingsInvalid


class StoreInvalidException(BaseStatusException):
    """Exception raised when the local record store cannot be initialized or recovered."""
    status = Status.StoreInvalid


class EndpointNotConfiguredException(BaseStatusException):
    """Exception raised when no remote endpoint URL is configured."""
    status = Status.EndpointNotConfigured
    log_level = logging.WARNING


class ServiceUnavailableException(BaseStatusException):
    """Exception raised when the remote endpoint cannot be reached or answers with an error."""
    status = Status.ServiceUnavailable
    log_level = logging.WARNING


class SnapshotInvalidException(BaseStatusException):
    """Exception raised when a pulled snapshot cannot be decoded."""
    status = Status.SnapshotInvalid
    log_level = logging.WARNING


class CredentialsInvalidException(BaseStatusException):
    """Exception raised when a login attempt fails.

    The message never says whether the email or the password was wrong.
    """
    status = Status.CredentialsInvalid
    log_level = logging.INFO


class NotAuthenticatedException(BaseStatusException):
    """Exception raised when an operation needs a signed-in user."""
    status = Status.NotAuthenticated


class PermissionDeniedException(BaseStatusException):
    """Exception raised when a user changes a record owned by someone else."""
    status = Status.PermissionDenied


class ValidationException(BaseStatusException, ValueError):
    """Exception raised when a record fails validation before reaching the store.

    Attributes:
        field (str): Name of the offending field, if known.
    """
    status = Status.ValidationFailed
    log_level = logging.WARNING

    def __init__(self, message: str = None, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class RecordNotFoundException(BaseStatusException):
    """Exception raised when a referenced record does not exist."""
    status = Status.RecordNotFound
    log_level = logging.WARNING


class RequestInvalidException(BaseStatusException):
    """Exception raised when a change request is missing or no longer pending."""
    status = Status.RequestInvalid
