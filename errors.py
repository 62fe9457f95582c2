"""Errors raised by the star comparison components."""

from typing import Optional


class StarCompareError(Exception):
    """Base class for all service errors."""
    pass


class InvalidRequest(StarCompareError, ValueError):
    """Raised when a repository identifier is missing or cannot be parsed."""
    pass


class Unauthorized(StarCompareError):
    """Raised when a request carries no access token."""
    pass


class Forbidden(StarCompareError):
    """Raised when an access token fails verification."""
    pass


class UnknownUser(StarCompareError):
    pass


class InvalidCredentials(StarCompareError):
    pass


class DuplicateUsername(StarCompareError):
    pass


class RepositoryNotFound(StarCompareError):
    """Raised when GitHub answers 404 for a repository."""
    pass


class UpstreamFetchError(StarCompareError):
    """Raised for any other failure talking to GitHub."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
