"""Exception hierarchy for Template Sync.

Every error is caught where it happens and logged; none of them is
allowed to stop the watch loop.
"""


class TemplateSyncError(Exception):
    """Base class for all Template Sync errors."""


class ParseError(TemplateSyncError):
    """The capture file has no usable request description."""


class TransportError(TemplateSyncError):
    """A replayed request did not complete with a 2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ApplicationError(TemplateSyncError):
    """The remote service answered 2xx but reported an error message."""

    def __init__(self, remote_message: str, status_code: int | None = None):
        super().__init__(f"Remote service error: {remote_message}")
        self.remote_message = remote_message
        self.status_code = status_code


class ResourceMissingError(TemplateSyncError):
    """No rendered artifact has been stored yet."""
