"""
Custom exception types for the volume manager.
"""


class VolumeManagerException(Exception):
    """Base exception for all volume manager errors."""
    pass


class ConfigurationError(VolumeManagerException):
    """Raised when the global configuration cannot be loaded or is invalid."""
    pass


class AuthenticationError(VolumeManagerException):
    """Raised when credentials for the cluster cannot be acquired."""
    pass


class TransportError(VolumeManagerException):
    """Raised when a cluster endpoint cannot be reached or answers with an HTTP error."""
    pass


class RestResponseError(VolumeManagerException):
    """Raised when the cluster answers a REST call with a non-OK status."""
    pass


class FileSystemError(VolumeManagerException):
    """Raised when a cluster filesystem operation fails."""
    pass


class PartialActionFailure(VolumeManagerException):
    """Raised when one step of a single volume action fails."""

    def __init__(self, volume_name: str, step: str, cause: Exception | None = None):
        self.volume_name = volume_name
        self.step = step
        self.cause = cause
        message = f"{step} failed for volume '{volume_name}'"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
