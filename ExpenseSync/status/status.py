"""Status definitions and exceptions for ExpenseSync.

This module provides:
    - Status: enumeration of possible application states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., SyncConfigInvalidException) for error handling in stores
"""
import enum
import logging
from typing import Dict, Optional


class Status(enum.StrEnum):
    """Enumeration of application status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Sync configuration status
    SyncNotConfigured = enum.auto()
    SyncConfigInvalid = enum.auto()

    # Sync lifecycle status
    SyncFailed = enum.auto()

    # Persistence status
    StorageUnavailable = enum.auto()
    SettingsInvalid = enum.auto()

    # Ledger status
    ExpenseNotFound = enum.auto()
    ExpenseInvalid = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status. Please check the settings.',
    Status.Okay: 'Everything is okay.',

    Status.SyncNotConfigured: 'GitHub sync is not configured. Add a token, repository and branch in the settings.',
    Status.SyncConfigInvalid: 'The GitHub sync configuration is incomplete, or contains invalid values.',

    Status.SyncFailed: 'Sync failed. Check your connection and try again.',

    Status.StorageUnavailable: 'Could not access the local storage.',
    Status.SettingsInvalid: 'The stored settings seem to be malformed.',

    Status.ExpenseNotFound: 'Could not find the expense.',
    Status.ExpenseInvalid: 'The expense contains invalid values.',
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
    """Base exception for status-based errors in ExpenseSync.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: Optional[str] = None):
        self.status_message = get_message(self.status)
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)

        from ..ui.actions import signals
        signals.error.emit(message or self.status_message)


class SyncConfigInvalidException(BaseStatusException):
    """Exception raised when a sync configuration fails validation.

    Attributes:
        errors (dict[str, str]): The first validation error for each offending field.
    """
    status = Status.SyncConfigInvalid

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        detail = '; '.join(f'{k}: {v}' for k, v in self.errors.items())
        super().__init__(detail or None)


class SyncFailedException(BaseStatusException):
    """Exception raised by transports when the remote repository rejects a sync."""
    status = Status.SyncFailed


class StorageUnavailableException(BaseStatusException):
    """Exception raised when the storage backend cannot be read or written."""
    status = Status.StorageUnavailable


class SettingsInvalidException(BaseStatusException):
    """Exception raised when stored application settings do not match the schema."""
    status = Status.SettingsInvalid


class ExpenseNotFoundException(BaseStatusException):
    """Exception raised when an expense id is not present in the ledger."""
    status = Status.ExpenseNotFound


class ExpenseInvalidException(BaseStatusException):
    """Exception raised when an expense is missing required values."""
    status = Status.ExpenseInvalid
