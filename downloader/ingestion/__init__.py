"""
Project acquisition module for git repositories and uploaded archives.

Handles destination layout, safe archive extraction, and cloning.
"""

from downloader.ingestion.models import (
    JobDescriptor,
    ProjectRef,
    ProjectType,
    IntegrationCredential,
    MaterializedTree,
)
from downloader.ingestion.paths import PathPolicy
from downloader.ingestion.archive import ArchiveExtractor, ArchiveLocator, ExtractionReport
from downloader.ingestion.git_handler import GitFetcher, FetchState, FetchOutcome

__all__ = [
    "JobDescriptor",
    "ProjectRef",
    "ProjectType",
    "IntegrationCredential",
    "MaterializedTree",
    "PathPolicy",
    "ArchiveExtractor",
    "ArchiveLocator",
    "ExtractionReport",
    "GitFetcher",
    "FetchState",
    "FetchOutcome",
]
