"""
Custom exception types for the upstream controller.
"""
from typing import Optional


class UpstreamControllerError(Exception):
    """Base exception for all upstream controller errors."""
    pass


class FatalControllerError(UpstreamControllerError):
    """Errors after which the process must exit and be restarted from scratch."""
    pass


class ConfigError(UpstreamControllerError):
    """Raised when the controller configuration is missing or invalid."""
    pass


class TransientWatchDecodeError(UpstreamControllerError):
    """Raised when a watch event cannot be decoded into an endpoint snapshot."""
    pass


class WatchConnectionLost(FatalControllerError):
    """Raised when the watch stream cannot be re-established."""
    pass


class StatusQueryError(UpstreamControllerError):
    """Raised when the load balancer status cannot be fetched or parsed."""
    pass


class AdminOperationError(UpstreamControllerError):
    """A mutation against the admin interface failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AddOperationError(AdminOperationError, FatalControllerError):
    """Adding a backend failed. Fatal under the default policy."""
    pass


class RemoveOperationError(AdminOperationError):
    """Removing a backend failed. Tolerated under the default policy."""
    pass


class ReconcileAborted(FatalControllerError):
    """Raised when the failure policy aborts on a non-add operation."""
    pass
