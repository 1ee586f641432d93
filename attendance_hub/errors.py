"""Error taxonomy for the persistence layer and its HTTP surface."""


class AttendanceHubError(Exception):
    """Base error. `message` is always safe to show to a user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RemoteUnavailable(AttendanceHubError):
    """Network down, probe failed or the remote operation was rejected. Always recoverable."""


class StorageError(AttendanceHubError):
    """The embedded local engine failed to open or to run a statement."""


class DuplicateKeyError(AttendanceHubError):
    """Local add with an id that is already stored."""


class NotFoundError(AttendanceHubError):
    """Target record of an update is missing."""


class PersistenceUnavailableError(AttendanceHubError):
    """Neither the remote store nor the local store could serve a write."""


class SpreadsheetError(AttendanceHubError):
    """Uploaded CSV could not be turned into student records."""
