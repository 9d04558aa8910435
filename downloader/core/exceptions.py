"""
Custom exceptions for the Project Downloader.

Every failure an acquisition can end in maps to one class below, so
callers can report a terminal job failure without inspecting messages.
Details dictionaries never carry credentials.
"""


class DownloaderError(Exception):
    """Base exception for all downloader errors."""

    def __init__(self, message: str, stage: str = None, details: dict = None):
        super().__init__(message)
        self.stage = stage
        self.details = details or {}

    def __str__(self):
        base_msg = super().__str__()
        if self.stage:
            return f"[{self.stage}] {base_msg}"
        return base_msg


class LookupFailure(DownloaderError):
    """Raised when job metadata cannot be resolved from the store."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, stage="Lookup", details=details)


class ArchiveError(DownloaderError):
    """Base class for archive location and extraction failures."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, stage="Archive", details=details)


class UnsupportedFormat(ArchiveError):
    """Raised when an archive's suffix is not a recognized format."""

    def __init__(self, path: str):
        super().__init__(
            f"Unsupported archive format: {path}",
            details={"path": path},
        )


class IllegalPath(ArchiveError):
    """Raised when an archive entry would land outside the destination."""

    def __init__(self, entry: str, destination: str):
        super().__init__(
            f"Illegal file path in archive: {entry}",
            details={"entry": entry, "destination": destination},
        )


class CorruptArchive(ArchiveError):
    """Raised when the archive container cannot be decoded."""


class ArchiveNotFound(ArchiveError):
    """Raised when no uploaded archive exists for a project."""

    def __init__(self, project_id: str, root: str, reason: str = None):
        message = f"No archive found for project {project_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            details={"project_id": project_id, "root": root},
        )


class GitError(DownloaderError):
    """
    Base class for version-control failures.

    ``retryable`` marks failures, such as timeouts, that may succeed if
    the job is resubmitted unchanged.
    """

    def __init__(self, message: str, details: dict = None, retryable: bool = False):
        super().__init__(message, stage="Git", details=details)
        self.retryable = retryable


class CloneFailure(GitError):
    """Raised when neither clone nor the pull fallback succeeds."""


class CheckoutFailure(GitError):
    """Raised when the pinned commit cannot be checked out."""
