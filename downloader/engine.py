"""
Acquisition orchestrator for the Project Downloader.

Routes a job to git or archive acquisition based on the project type,
then classifies the materialized tree.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from downloader.analysis.detector import ClassificationResult, LanguageClassifier
from downloader.core.config import Config, DownloaderConfig
from downloader.ingestion.archive import ArchiveExtractor, ArchiveLocator
from downloader.ingestion.git_handler import GitFetcher
from downloader.ingestion.models import (
    IntegrationCredential,
    JobDescriptor,
    MaterializedTree,
    ProjectRef,
    ProjectType,
)
from downloader.ingestion.paths import PathPolicy

logger = logging.getLogger(__name__)


@dataclass
class AcquisitionResult:
    """Materialized tree plus its classification."""

    tree: MaterializedTree
    classification: ClassificationResult

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tree": self.tree.to_dict(),
            "classification": self.classification.to_dict(),
        }


class AcquisitionOrchestrator:
    """
    Materializes one project revision and classifies it.

    Components are built from the configuration unless supplied, which
    lets tests substitute any of them.
    """

    def __init__(
        self,
        config: DownloaderConfig = None,
        path_policy: PathPolicy = None,
        locator: ArchiveLocator = None,
        extractor: ArchiveExtractor = None,
        git_fetcher: GitFetcher = None,
        classifier: LanguageClassifier = None,
    ):
        self.config = config or Config.get()
        self.path_policy = path_policy or PathPolicy(self.config.default_ref)
        self.locator = locator or ArchiveLocator(self.config.archive)
        self.extractor = extractor or ArchiveExtractor(self.config.archive)
        self.git_fetcher = git_fetcher or GitFetcher(self.config.git)
        self.classifier = classifier or LanguageClassifier()

    @property
    def root(self) -> Path:
        return Path(self.config.download_root)

    def acquire(
        self,
        job: JobDescriptor,
        project_type: ProjectType,
        project_ref: ProjectRef,
        credential: Optional[IntegrationCredential] = None,
    ) -> AcquisitionResult:
        """
        Acquire a project and classify the result.

        Args:
            job: The job being processed.
            project_type: FILE or a hosting-provider variant.
            project_ref: Locator and revision to materialize.
            credential: Access token; required for hosting providers.

        Returns:
            AcquisitionResult for the caller to publish.

        Raises:
            ValueError: If a VCS project lacks a credential or locator.
            DownloaderError: Any acquisition failure, unmodified.
        """
        logger.info(
            f"Processing {project_type.value} project {project_ref.project_id} "
            f"for analysis {job.analysis_id}"
        )

        if project_type.is_vcs:
            tree = self._acquire_git(job, project_ref, credential)
        else:
            tree = self._acquire_archive(job, project_ref)

        # Recomputed so acquisition and classification agree by construction
        destination = self.path_policy.destination_for(
            self.root, job.organization_id, project_ref
        )
        classification = self.classifier.classify(destination)

        return AcquisitionResult(tree=tree, classification=classification)

    def _acquire_archive(self, job: JobDescriptor, project_ref: ProjectRef) -> MaterializedTree:
        archive_path = self.locator.locate(self.root, project_ref.project_id)
        destination = self.path_policy.destination_for(
            self.root, job.organization_id, project_ref
        )

        report = self.extractor.extract(archive_path, destination)

        return MaterializedTree(
            path=report.destination,
            source="archive",
            files_written=report.files_written,
            archive_path=archive_path,
        )

    def _acquire_git(
        self,
        job: JobDescriptor,
        project_ref: ProjectRef,
        credential: Optional[IntegrationCredential],
    ) -> MaterializedTree:
        if credential is None or not credential.token:
            raise ValueError(
                f"Project {project_ref.project_id} requires an integration credential"
            )
        if not project_ref.url:
            raise ValueError(f"Project {project_ref.project_id} has no repository URL")

        destination = self.path_policy.destination_for(
            self.root, job.organization_id, project_ref
        )
        # Same rule as the destination, so the cloned ref and its directory agree
        branch = self.path_policy.resolve_ref(project_ref.branch, None)

        outcome = self.git_fetcher.fetch(
            project_ref.url,
            branch,
            destination,
            credential.token,
            commit=project_ref.commit if project_ref.has_commit else None,
        )

        return MaterializedTree(
            path=outcome.destination.absolute(),
            source="git",
            states=[state.value for state in outcome.states],
        )
