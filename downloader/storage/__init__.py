"""
Storage module for job metadata lookups and result publication.
"""

from downloader.storage.backend import (
    AnalysisRecord,
    ProjectRecord,
    MetadataStore,
    JSONMetadataStore,
    ResultPublisher,
    JSONLinesPublisher,
    MemoryPublisher,
)

__all__ = [
    "AnalysisRecord",
    "ProjectRecord",
    "MetadataStore",
    "JSONMetadataStore",
    "ResultPublisher",
    "JSONLinesPublisher",
    "MemoryPublisher",
]
