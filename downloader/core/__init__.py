"""
Core module containing configuration and the error taxonomy.
"""

from downloader.core.config import Config, DownloaderConfig
from downloader.core.exceptions import (
    DownloaderError,
    LookupFailure,
    ArchiveError,
    UnsupportedFormat,
    IllegalPath,
    CorruptArchive,
    ArchiveNotFound,
    GitError,
    CloneFailure,
    CheckoutFailure,
)

__all__ = [
    "Config",
    "DownloaderConfig",
    "DownloaderError",
    "LookupFailure",
    "ArchiveError",
    "UnsupportedFormat",
    "IllegalPath",
    "CorruptArchive",
    "ArchiveNotFound",
    "GitError",
    "CloneFailure",
    "CheckoutFailure",
]
