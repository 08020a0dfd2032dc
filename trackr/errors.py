"""Exceptions raised by Trackr."""


class TrackrError(Exception):
    """Base exception for all Trackr errors."""
    pass


class ConfigurationError(TrackrError):
    """Raised for missing or invalid configuration."""
    pass


class GitError(TrackrError):
    """Raised when the git binary cannot be run."""
    pass


class RemoteError(TrackrError):
    """Raised when the remote log store rejects or fails a request."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class RemoteConflict(RemoteError):
    """Raised when a conditional write loses against a concurrent writer."""
    pass


class RemoteAuthFailure(RemoteError):
    """Raised when the remote store refuses our credentials."""
    pass


class RemoteUnavailable(RemoteError):
    """Raised for network failures and unexpected remote responses."""
    pass


class RetryExhaustedError(TrackrError):
    """Raised when a commit could not be appended within the retry budget."""

    def __init__(self, commit_hash: str, attempts: int):
        super().__init__(
            f"Gave up appending {commit_hash[:12]} after {attempts} conflicting attempts"
        )
        self.commit_hash = commit_hash
        self.attempts = attempts
