"""
Job service for the Project Downloader.

Hydrates a job descriptor from the metadata store, runs acquisition,
and hands the result message to the publisher. Every failure is a
terminal failure for the job and is re-raised to the job source.
"""

import logging
from typing import Any, Dict, Optional

from downloader.core.config import Config, DownloaderConfig
from downloader.core.exceptions import DownloaderError, LookupFailure
from downloader.engine import AcquisitionOrchestrator, AcquisitionResult
from downloader.ingestion.models import IntegrationCredential, JobDescriptor, ProjectRef
from downloader.storage.backend import MetadataStore, ResultPublisher

logger = logging.getLogger(__name__)


class DownloaderService:
    """Processes one job descriptor at a time."""

    def __init__(
        self,
        store: MetadataStore,
        publisher: ResultPublisher,
        config: DownloaderConfig = None,
        orchestrator: AcquisitionOrchestrator = None,
    ):
        self.config = config or Config.get()
        self.store = store
        self.publisher = publisher
        self.orchestrator = orchestrator or AcquisitionOrchestrator(self.config)

    def handle(self, job: JobDescriptor) -> Dict[str, Any]:
        """
        Process a job end to end.

        Args:
            job: Descriptor received from the job source.

        Returns:
            The result message that was published.

        Raises:
            LookupFailure: If job metadata cannot be resolved.
            DownloaderError: If acquisition fails.
        """
        try:
            project_ref, project_type, credential = self._hydrate(job)
            result = self.orchestrator.acquire(job, project_type, project_ref, credential)
        except DownloaderError as e:
            logger.error(f"Job for analysis {job.analysis_id} failed: {e}")
            raise

        message = self.build_message(job, result)
        try:
            self.publisher.publish(message)
        except Exception:
            logger.exception(f"Failed to publish result for analysis {job.analysis_id}")
            raise

        logger.info(f"Job for analysis {job.analysis_id} completed")
        return message

    def _hydrate(self, job: JobDescriptor):
        try:
            analysis = self.store.get_analysis(job.analysis_id)
            project = self.store.get_project(analysis.project_id)
            logger.debug(
                f"Project {project.project_id} is a {project.provider or project.project_type.value} project"
            )

            credential: Optional[IntegrationCredential] = None
            if project.project_type.is_vcs:
                if not job.integration_id:
                    raise LookupFailure(
                        f"Project {project.project_id} needs an integration but "
                        f"the job carries none",
                        details={"project_id": project.project_id},
                    )
                credential = self.store.get_integration(job.integration_id)
        except LookupFailure:
            raise
        except Exception as e:
            raise LookupFailure(
                f"Metadata lookup failed for analysis {job.analysis_id}: {e}",
                details={"analysis_id": job.analysis_id},
            ) from e

        project_ref = ProjectRef(
            project_id=project.project_id,
            project_type=project.project_type,
            url=project.url,
            branch=analysis.branch,
            commit=analysis.commit,
        )
        return project_ref, project.project_type, credential

    @staticmethod
    def build_message(job: JobDescriptor, result: AcquisitionResult) -> Dict[str, Any]:
        """Build the message published for a completed job."""
        message = job.to_dict()
        message.update({
            "detected_languages": list(result.classification.detected_languages),
            "primary_language": result.classification.primary_language,
            "detection_confidence": result.classification.confidence,
            "destination": str(result.tree.path),
        })
        return message
